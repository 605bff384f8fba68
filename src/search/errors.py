"""Error taxonomy for the search engine.

Each error carries the HTTP status it maps to so the API layer can
translate it without a lookup table. Quota denial is deliberately absent:
it is a normal admission outcome, not an exception.
"""

from typing import Any


class SearchEngineError(Exception):
    """Base exception for engine errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            details: Additional structured error details.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a response payload."""
        payload: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(SearchEngineError):
    """Malformed request input, such as an unknown sort key."""

    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            field: Wire name of the offending field.
        """
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class AuthError(SearchEngineError):
    """Missing or invalid caller credential."""

    status_code = 401
    error_code = "unauthorized"


class SourceRetrievalError(SearchEngineError):
    """One retriever failed.

    Never propagated out of the engine; it is converted into a degraded,
    empty source result.
    """

    status_code = 502
    error_code = "source_retrieval_error"

    def __init__(self, source: str, error_type: str, message: str) -> None:
        """Initialize the error.

        Args:
            source: Source type that failed.
            error_type: Failure classification.
            message: Human-readable error message.
        """
        super().__init__(message, {"source": source, "error_type": error_type})
        self.source = source
        self.error_type = error_type


class RecomputeInProgressError(SearchEngineError):
    """A trending recompute is already running."""

    status_code = 409
    error_code = "recompute_in_progress"


class NotFoundError(SearchEngineError):
    """A referenced record does not exist."""

    status_code = 404
    error_code = "not_found"
