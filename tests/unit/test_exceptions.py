"""Tests for exceptions."""

from bellyfed_analytics.exceptions import (
    AnalyticsError,
    InternalError,
    NotFoundError,
    TransientStorageError,
    ValidationError,
)


class TestValidationError:
    """Tests for ValidationError."""

    def test_attributes(self) -> None:
        error = ValidationError("limit", 500, "limit must be between 1 and 100")

        assert isinstance(error, AnalyticsError)
        assert error.field == "limit"
        assert error.value == 500
        assert error.status_code == 400
        assert not error.retryable
        assert error.as_dict() == {
            "error": "limit must be between 1 and 100",
            "message": "limit must be between 1 and 100",
            "code": "validation_error",
        }

    def test_required(self) -> None:
        error = ValidationError.required("entityId")
        assert str(error) == "entityId is required"
        assert error.value is None


def test_not_found() -> None:
    error = NotFoundError("Cached data", "homepage")

    assert str(error) == "Cached data not found: homepage"
    assert error.status_code == 404
    assert error.as_dict()["code"] == "not_found"


class TestTransientStorageError:
    """Tests for TransientStorageError."""

    def test_message_includes_context(self) -> None:
        cause = RuntimeError("throttled")
        error = TransientStorageError(
            "Storage operation failed: ThrottlingException",
            cause,
            operation="update_item",
            table_name="events",
        )

        assert str(error) == (
            "Storage operation failed: ThrottlingException "
            "[operation=update_item, table=events]"
        )
        assert error.cause is cause
        assert error.retryable
        assert error.status_code == 503

    def test_message_without_context(self) -> None:
        assert str(TransientStorageError("Storage operation timed out")) == (
            "Storage operation timed out"
        )

    def test_as_dict_hides_details(self) -> None:
        error = TransientStorageError("boom", operation="get_item", table_name="events")
        assert error.as_dict() == {
            "error": "Storage temporarily unavailable",
            "message": "Storage temporarily unavailable",
            "code": "storage_unavailable",
        }


def test_internal_error_hides_details() -> None:
    error = InternalError("KeyError: 'PK'")

    assert str(error) == "KeyError: 'PK'"
    assert error.as_dict()["error"] == "Internal server error"
    assert error.status_code == 500
