"""Error taxonomy shared by ingestion and query paths."""

from __future__ import annotations


class CourseRagError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, detail: str | None = None) -> None:
        self.message = message
        self.detail = detail
        super().__init__(message)


class ValidationError(CourseRagError):
    """Request is missing required fields; raised before any external call."""


class NotFoundError(CourseRagError):
    """Referenced course or file does not exist."""


class ExtractionFailure(CourseRagError):
    """Structured extraction produced nothing usable. Recovered via fallback."""


class FallbackExtractionFailure(CourseRagError):
    """The multimodal extraction path failed; fatal for the document."""


class ExternalServiceError(CourseRagError):
    """An upstream model or tool call failed."""

    def __init__(self, message: str, detail: str | None = None, retryable: bool = False) -> None:
        super().__init__(message, detail)
        self.retryable = retryable


class ExternalServiceTimeout(ExternalServiceError):
    """An upstream call exceeded its deadline."""

    def __init__(self, service: str, timeout: float) -> None:
        super().__init__(f"{service} did not respond within {timeout:.1f}s", retryable=True)
        self.service = service
        self.timeout = timeout


class EmbeddingFailure(ExternalServiceError):
    """Embedding model call failed or returned no vector."""


class GenerationFailure(ExternalServiceError):
    """Answer model call failed."""


class TranscriptionFailure(ExternalServiceError):
    """Speech-to-text fallback for a video failed."""


class IndexUnavailable(CourseRagError):
    """Vector store could not be read or written."""


__all__ = [
    "CourseRagError",
    "ValidationError",
    "NotFoundError",
    "ExtractionFailure",
    "FallbackExtractionFailure",
    "ExternalServiceError",
    "ExternalServiceTimeout",
    "EmbeddingFailure",
    "GenerationFailure",
    "TranscriptionFailure",
    "IndexUnavailable",
]
