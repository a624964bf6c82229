"""Exceptions for bellyfed-analytics."""

from typing import Any

# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------


class AnalyticsError(Exception):
    """
    Base exception for all bellyfed-analytics errors.

    All exceptions raised by this library inherit from this class,
    allowing callers to catch all library-specific errors with a single
    except clause.

    Attributes:
        code: Machine-readable error code for API responses
        status_code: HTTP status code used by the API handler
        retryable: True if redelivering the same event may succeed
    """

    code = "analytics_error"
    status_code = 500
    retryable = False

    def as_dict(self) -> dict[str, Any]:
        """
        Serialize for JSON API responses.

        ``error`` and ``message`` carry the same human-readable text so that
        clients reading either field get the same answer.
        """
        return {
            "error": str(self),
            "message": str(self),
            "code": self.code,
        }


# ---------------------------------------------------------------------------
# Input Exceptions
# ---------------------------------------------------------------------------


class ValidationError(AnalyticsError):
    """
    Raised when an inbound event or request is missing or malformed.

    Validation errors are never retryable. They abort only the single
    event being processed.

    Attributes:
        field: Name of the offending field
        value: The rejected value (None when the field is missing)
        reason: Human-readable explanation
    """

    code = "validation_error"
    status_code = 400

    def __init__(self, field: str, value: Any, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(reason)

    @classmethod
    def required(cls, field: str) -> "ValidationError":
        """Build the error for a missing required field."""
        return cls(field, None, f"{field} is required")


class NotFoundError(AnalyticsError):
    """Raised when a referenced entity or cache key is absent."""

    code = "not_found"
    status_code = 404

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


# ---------------------------------------------------------------------------
# Storage Exceptions
# ---------------------------------------------------------------------------


class TransientStorageError(AnalyticsError):
    """
    Raised when the backing store is throttled, times out or is unreachable.

    The delivery channel is expected to redeliver the event. Because counter
    increments are not idempotent, a retry after a partial success over-counts.

    Attributes:
        operation: Store operation that failed (e.g., "update_item")
        cause: The underlying exception
        table_name: Table being accessed
    """

    code = "storage_unavailable"
    status_code = 503
    retryable = True

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        *,
        operation: str | None = None,
        table_name: str | None = None,
    ) -> None:
        self.cause = cause
        self.operation = operation
        self.table_name = table_name
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.table_name:
            context.append(f"table={self.table_name}")
        if context:
            return f"{message} [{', '.join(context)}]"
        return message

    def as_dict(self) -> dict[str, Any]:
        # Never leak table names or botocore details to API callers
        return {
            "error": "Storage temporarily unavailable",
            "message": "Storage temporarily unavailable",
            "code": self.code,
        }


class InternalError(AnalyticsError):
    """Raised for unexpected failures. Details are never sent to clients."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)

    def as_dict(self) -> dict[str, Any]:
        return {
            "error": "Internal server error",
            "message": "Internal server error",
            "code": self.code,
        }
