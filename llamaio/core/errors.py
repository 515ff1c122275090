"""Error taxonomy and classification into HTTP responses."""

from enum import Enum

from pydantic import BaseModel

from llamaio.core.config import constants
from llamaio.core.db_client import (
    DatabaseError,
    DuplicateRecordError,
    MalformedIdentifierError,
    RecordNotFoundError,
    StorageUnavailableError,
)


class ErrorCategory(Enum):
    """Categories of errors that can abort a request."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    MALFORMED_IDENTIFIER = "malformed_identifier"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    UNKNOWN = "unknown"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_DUPLICATE_EMAIL = "ERR_DUPLICATE_EMAIL"
    ERR_TASK_ALREADY_COMPLETED = "ERR_TASK_ALREADY_COMPLETED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_MALFORMED_IDENTIFIER = "ERR_MALFORMED_IDENTIFIER"
    ERR_STORAGE_UNAVAILABLE = "ERR_STORAGE_UNAVAILABLE"
    ERR_UNKNOWN = "ERR_UNKNOWN"


_STATUS_BY_CATEGORY: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: constants.HTTP_BAD_REQUEST,
    ErrorCategory.NOT_FOUND: constants.HTTP_NOT_FOUND,
    ErrorCategory.MALFORMED_IDENTIFIER: constants.HTTP_BAD_REQUEST,
    ErrorCategory.STORAGE_UNAVAILABLE: constants.HTTP_SERVER_ERROR,
    ErrorCategory.UNKNOWN: constants.HTTP_SERVER_ERROR,
}


class ServiceError(Exception):
    """Base class for errors raised by validators and entity services."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    code: str = ErrorCode.ERR_UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailedError(ServiceError):
    """A required field is missing or invalid, or a cross-entity check failed."""

    category = ErrorCategory.VALIDATION
    code = ErrorCode.ERR_VALIDATION


class TaskAlreadyCompletedError(ValidationFailedError):
    """Completed tasks cannot be replaced."""

    code = ErrorCode.ERR_TASK_ALREADY_COMPLETED

    def __init__(self, message: str = "Error: Cannot update a task that is already completed.") -> None:
        super().__init__(message)


class NotFoundError(ServiceError):
    """The addressed entity does not exist."""

    category = ErrorCategory.NOT_FOUND
    code = ErrorCode.ERR_NOT_FOUND


class ErrorResponse(BaseModel):
    """Structured error response rendered as the `{message, data}` envelope."""

    code: str
    category: ErrorCategory
    status_code: int
    message: str


def _entity_label(collection: str) -> str:
    """Singular entity name for a collection ("users" -> "user")."""
    return collection[:-1] if collection.endswith("s") else collection


def _response(category: ErrorCategory, code: str, message: str) -> ErrorResponse:
    return ErrorResponse(code=code, category=category, status_code=_STATUS_BY_CATEGORY[category], message=message)


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error raised while handling a request.

    Args:
        exception: The exception that aborted the request

    Returns:
        ErrorResponse with code, category, HTTP status and a human-readable message
    """
    if isinstance(exception, ServiceError):
        return _response(exception.category, exception.code, exception.message)

    if isinstance(exception, DuplicateRecordError):
        if exception.field == "email":
            return _response(
                ErrorCategory.VALIDATION,
                ErrorCode.ERR_DUPLICATE_EMAIL,
                "Validation Error: This email is already in use.",
            )
        return _response(
            ErrorCategory.VALIDATION,
            ErrorCode.ERR_VALIDATION,
            f"Validation Error: Duplicate value for '{exception.field}'.",
        )

    if isinstance(exception, MalformedIdentifierError):
        return _response(
            ErrorCategory.MALFORMED_IDENTIFIER,
            ErrorCode.ERR_MALFORMED_IDENTIFIER,
            f"Invalid {_entity_label(exception.collection)} ID format.",
        )

    if isinstance(exception, RecordNotFoundError):
        return _response(
            ErrorCategory.NOT_FOUND,
            ErrorCode.ERR_NOT_FOUND,
            f"{_entity_label(exception.collection).capitalize()} not found",
        )

    if isinstance(exception, StorageUnavailableError | ConnectionError | TimeoutError):
        return _response(
            ErrorCategory.STORAGE_UNAVAILABLE,
            ErrorCode.ERR_STORAGE_UNAVAILABLE,
            "Database connection error. Please check the database path and connection settings.",
        )

    if isinstance(exception, DatabaseError):
        return _response(
            ErrorCategory.UNKNOWN,
            ErrorCode.ERR_UNKNOWN,
            "An internal server error occurred while accessing the database.",
        )

    return _response(ErrorCategory.UNKNOWN, ErrorCode.ERR_UNKNOWN, "An internal server error occurred.")
