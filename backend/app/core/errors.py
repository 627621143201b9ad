"""Domain exceptions raised by the extraction pipeline.

Routes translate these into HTTP responses; services below the API layer
never raise ``HTTPException`` directly.
"""

from __future__ import annotations


class FinExtractError(Exception):
    """Base class for all domain errors."""


class AIConfigError(FinExtractError):
    """The AI provider/model/key combination is unusable."""


class AIProviderError(FinExtractError):
    """The hosted model call failed (transport, HTTP status, malformed envelope)."""


class ProviderCapabilityError(FinExtractError):
    """The configured provider cannot handle the requested input (e.g. images)."""


class StructuredOutputError(FinExtractError):
    """The model never produced output matching the requested schema."""

    def __init__(self, message: str, *, attempts: int = 0, detail: str | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.detail = detail


class PDFParseError(FinExtractError):
    pass


class StorageError(FinExtractError):
    pass


class UploadRejected(FinExtractError):
    """Upload failed type/size validation; message is user-facing."""


class DocumentPersistError(FinExtractError):
    pass


class TemplateInUse(FinExtractError):
    """A template still referenced by documents cannot be deleted."""
