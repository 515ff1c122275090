"""Unit tests for error classification utilities."""

import pytest

from llamaio.core.db_client import (
    DatabaseError,
    DuplicateRecordError,
    MalformedIdentifierError,
    RecordNotFoundError,
    StorageUnavailableError,
)
from llamaio.core.errors import (
    ErrorCategory,
    ErrorCode,
    NotFoundError,
    TaskAlreadyCompletedError,
    ValidationFailedError,
    classify_error_with_response,
)


@pytest.mark.unit
class TestClassifyErrorWithResponse:
    """Tests for classify_error_with_response function."""

    def test_validation_error(self):
        response = classify_error_with_response(ValidationFailedError("Validation Error: bad"))

        assert response.category == ErrorCategory.VALIDATION
        assert response.code == ErrorCode.ERR_VALIDATION
        assert response.status_code == 400
        assert response.message == "Validation Error: bad"

    def test_task_already_completed(self):
        response = classify_error_with_response(TaskAlreadyCompletedError())

        assert response.status_code == 400
        assert response.code == ErrorCode.ERR_TASK_ALREADY_COMPLETED
        assert response.message == "Error: Cannot update a task that is already completed."

    def test_not_found(self):
        response = classify_error_with_response(NotFoundError("User not found"))

        assert response.status_code == 404
        assert response.message == "User not found"

    def test_duplicate_email(self):
        response = classify_error_with_response(DuplicateRecordError("users", "email"))

        assert response.status_code == 400
        assert response.code == ErrorCode.ERR_DUPLICATE_EMAIL
        assert "already in use" in response.message

    def test_malformed_identifier(self):
        response = classify_error_with_response(MalformedIdentifierError("tasks", "xyz"))

        assert response.status_code == 400
        assert response.category == ErrorCategory.MALFORMED_IDENTIFIER
        assert response.message == "Invalid task ID format."

    def test_record_not_found(self):
        response = classify_error_with_response(RecordNotFoundError("users", "a" * 24))

        assert response.status_code == 404
        assert response.message == "User not found"

    @pytest.mark.parametrize(
        "exception", [StorageUnavailableError("down"), ConnectionError("refused"), TimeoutError("slow")]
    )
    def test_storage_unavailable(self, exception):
        response = classify_error_with_response(exception)

        assert response.status_code == 500
        assert response.category == ErrorCategory.STORAGE_UNAVAILABLE
        assert "Database connection error" in response.message

    def test_generic_database_error(self):
        response = classify_error_with_response(DatabaseError("disk I/O error"))

        assert response.status_code == 500
        assert "disk" not in response.message

    def test_unknown_error(self):
        response = classify_error_with_response(RuntimeError("boom"))

        assert response.category == ErrorCategory.UNKNOWN
        assert response.status_code == 500
        assert response.message == "An internal server error occurred."
