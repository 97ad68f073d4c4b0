"""
Exception types shared across Book Lab.

Errors carry enough context for the presentation layer to show a useful
message; nothing here retries or recovers on its own.
"""

from typing import Any, List, Optional


class BookLabError(Exception):
    """Base class for all Book Lab errors."""


# Gateway errors

class GatewayError(BookLabError):
    """Raised when a language-model call cannot be completed."""


class NotConfiguredError(GatewayError):
    """No LLM provider has been selected yet."""

    default_message = "LLM provider not configured. Please complete the onboarding process in Settings."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class MissingCredentialError(GatewayError):
    """The selected provider lacks a key or connection detail."""


class ProviderUnavailableError(GatewayError):
    """The model backend could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# Pipeline errors

class PipelineError(BookLabError):
    """A pipeline operation failed; ``cause`` holds the underlying error."""

    operation = "pipeline operation"

    def __init__(self, cause: BaseException, message: Optional[str] = None):
        super().__init__(message or f"Failed to {self.operation}: {cause}")
        self.cause = cause


class TopicExtractionError(PipelineError):
    operation = "extract topics"


class NoteProcessingError(PipelineError):
    """Raised when processing pasted notes stops part way.

    ``results`` lists the paragraphs that were already committed.
    """

    operation = "process notes"

    def __init__(self, cause: BaseException, results: Optional[List[Any]] = None):
        super().__init__(cause)
        self.results = results or []


class OutlineGenerationError(PipelineError):
    operation = "generate outline"


class ChapterGenerationError(PipelineError):
    operation = "generate chapter"


class RefinementError(PipelineError):
    operation = "refine text"


# Store errors

class StoreError(BookLabError):
    """Raised by the persistent store."""


class NotFoundError(StoreError):
    """A referenced record does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} with ID {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConstraintViolationError(StoreError):
    """A database constraint rejected a write."""


# Other errors

class SecretDecodeError(BookLabError):
    """A stored secret could not be decrypted."""


class ExportError(BookLabError):
    """A book could not be exported."""
