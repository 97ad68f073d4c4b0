"""
Model provider gateway.

One ``complete`` call over either the hosted OpenAI API or a local Ollama
server, chosen from the ``llm_provider`` setting. No retries, no streaming:
each call makes a single request and returns the whole response text.
"""

import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, List, Optional

import openai
import requests
from loguru import logger

from book_lab.core.config import LLMConfig
from book_lab.core.exceptions import (
    MissingCredentialError,
    NotConfiguredError,
    ProviderUnavailableError,
)


Message = Dict[str, str]


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    OLLAMA = "ollama"


class ModelGateway(ABC):
    """Chat completion over a single backend."""

    provider: Optional[str] = None

    @abstractmethod
    def complete(self, messages: List[Message], temperature: float = 0.7, max_tokens: int = 1000) -> str:
        """Return the generated text for ``messages``."""


class UnconfiguredGateway(ModelGateway):
    """Stands in until onboarding selects a provider. Never does any I/O."""

    def __init__(self, message: Optional[str] = None):
        self.message = message

    def complete(self, messages: List[Message], temperature: float = 0.7, max_tokens: int = 1000) -> str:
        raise NotConfiguredError(self.message)


class OpenAIGateway(ModelGateway):
    """Hosted OpenAI chat completions.

    The API key is looked up on first use, so a missing key only disables
    generation instead of failing at startup.
    """

    provider = LLMProvider.OPENAI.value

    def __init__(
        self,
        api_key_resolver: Callable[[], Optional[str]],
        model: str = "gpt-4",
        timeout: Optional[float] = None,
    ):
        self.api_key_resolver = api_key_resolver
        self.model = model
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            api_key = self.api_key_resolver() or os.environ.get("OPENAI_API_KEY")
            if not api_key:
                raise MissingCredentialError(
                    "OpenAI API key not found. Please configure it in settings "
                    "or add OPENAI_API_KEY to your .env file."
                )

            self._client = openai.OpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)
            logger.info("OpenAI API key loaded")
        return self._client

    def complete(self, messages: List[Message], temperature: float = 0.7, max_tokens: int = 1000) -> str:
        client = self._get_client()

        logger.debug(f"Calling OpenAI (model: {self.model}, max_tokens: {max_tokens})")
        try:
            completion = client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIStatusError as e:
            raise ProviderUnavailableError(f"OpenAI API error: {e.message}", status_code=e.status_code) from e
        except openai.OpenAIError as e:
            raise ProviderUnavailableError(f"Failed to call OpenAI: {e}") from e

        content = completion.choices[0].message.content or ""
        logger.debug(f"OpenAI response received ({len(content)} chars)")
        return content


class OllamaGateway(ModelGateway):
    """Local Ollama server, ``/api/chat`` endpoint."""

    provider = LLMProvider.OLLAMA.value

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.2",
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def complete(self, messages: List[Message], temperature: float = 0.7, max_tokens: int = 1000) -> str:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }

        logger.info(f"Calling Ollama: {self.base_url} (model: {self.model})")
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise ProviderUnavailableError(f"Failed to call Ollama at {self.base_url}: {e}") from e

        if not response.ok:
            raise ProviderUnavailableError(
                f"Ollama API error: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )

        try:
            content = response.json()["message"]["content"] or ""
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderUnavailableError(f"Unexpected response from Ollama: {e}") from e

        logger.info(f"Ollama response received ({len(content)} chars)")
        return content


def create_gateway(store, config: Optional[LLMConfig] = None) -> ModelGateway:
    """Build the gateway for the provider selected in the settings table."""
    config = config or LLMConfig()
    provider = store.get_setting("llm_provider")

    logger.info(f"LLM provider from database: {provider!r}")

    if not provider:
        logger.info("No LLM provider configured yet. Waiting for onboarding...")
        return UnconfiguredGateway()

    if provider == LLMProvider.OPENAI.value:
        return OpenAIGateway(
            api_key_resolver=lambda: store.get_decrypted_setting("openai_api_key"),
            model=store.get_setting("openai_model") or config.openai_model,
            timeout=config.request_timeout,
        )

    if provider == LLMProvider.OLLAMA.value:
        gateway = OllamaGateway(
            base_url=store.get_setting("ollama_url") or config.ollama_url,
            model=store.get_setting("ollama_model") or config.ollama_model,
            timeout=config.request_timeout,
        )
        logger.info(f"Ollama configured: {gateway.base_url} (model: {gateway.model})")
        return gateway

    logger.warning(f"Unsupported LLM provider: {provider}")
    return UnconfiguredGateway(f"Unsupported LLM provider: {provider}. Please choose a provider in Settings.")
