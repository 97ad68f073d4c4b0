"""
First-run provider selection.
"""

from typing import Optional

from loguru import logger

from book_lab.core.exceptions import MissingCredentialError
from book_lab.services.gateway import LLMProvider


def is_onboarding_complete(store) -> bool:
    return store.get_setting("onboarding_complete") == "true"


def complete_onboarding(
    store,
    provider: str,
    api_key: Optional[str] = None,
    ollama_url: Optional[str] = None,
    ollama_model: Optional[str] = None,
    author_name: Optional[str] = None,
) -> None:
    """Persist the chosen provider and its options, then mark onboarding done."""
    provider = LLMProvider(provider).value

    if provider == LLMProvider.OPENAI.value:
        if not api_key:
            raise MissingCredentialError("An OpenAI API key is required for the openai provider")
        store.set_setting("openai_api_key", api_key)
    else:
        if ollama_url:
            store.set_setting("ollama_url", ollama_url)
        if ollama_model:
            store.set_setting("ollama_model", ollama_model)

    if author_name:
        store.set_setting("author_name", author_name)

    store.set_setting("llm_provider", provider)
    store.set_setting("onboarding_complete", "true")
    logger.info(f"Onboarding complete with provider: {provider}")
