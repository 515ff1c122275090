"""Request validation performed before any mutation."""

import logging
from collections.abc import Iterable
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from llamaio.core import db_client
from llamaio.core.config import constants
from llamaio.core.errors import NotFoundError, ValidationFailedError


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def require_fields(payload: dict[str, Any], fields: tuple[str, ...]) -> None:
    """Fail if any of the fields is missing, null or an empty string.

    Raises:
        ValidationFailedError: Naming every required field
    """
    missing = [field for field in fields if payload.get(field) in (None, "")]
    if missing:
        quoted = [f"'{field}'" for field in fields]
        listed = " and ".join(quoted) if len(quoted) <= 2 else ", ".join(quoted[:-1]) + f" and {quoted[-1]}"  # noqa: PLR2004
        logger.info("required_fields_missing", extra={"missing": missing})
        raise ValidationFailedError(f"Validation Error: {listed} are required fields.")


def _describe_errors(error: PydanticValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"]) or "body"
        parts.append(f"{location}: {detail['msg']}")
    return "; ".join(parts)


def validate_payload(model: type[ModelT], payload: dict[str, Any]) -> ModelT:
    """Validate a request payload against a Pydantic model.

    Raises:
        ValidationFailedError: If the payload does not satisfy the model
    """
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationFailedError(f"Validation Error: {_describe_errors(e)}") from e


def require_task_ids(task_ids: Iterable[str]) -> None:
    """Fail with MalformedIdentifierError on the first malformed task id."""
    for task_id in task_ids:
        db_client.require_record_id(collection="tasks", record_id=task_id)


async def ensure_email_available(*, email: str, exclude_user_id: str | None = None) -> None:
    """Fail if another user already has this (normalized) email address.

    Raises:
        ValidationFailedError: If the email is in use
    """
    existing = await db_client.list_records(collection="users", where={"email": email}, limit=2)
    if any(user["_id"] != exclude_user_id for user in existing):
        raise ValidationFailedError("Validation Error: This email is already in use.")


async def resolve_assignment(*, assigned_user: str, assigned_user_name: str | None, replacing: bool) -> str:
    """Check a task's assignment against the referenced user.

    Args:
        assigned_user: Assigned user ID, empty when unassigned
        assigned_user_name: Name the client claims the user has
        replacing: True for whole-task replacement, False for creation

    Returns:
        The assignedUserName to store

    Raises:
        MalformedIdentifierError: If assigned_user is not a valid id
        NotFoundError: If the assigned user does not exist
        ValidationFailedError: If the supplied name does not match
    """
    if assigned_user:
        try:
            user = await db_client.get_record(collection="users", record_id=assigned_user)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError("Error: Cannot assign task to a user that does not exist.") from e

        if assigned_user_name != user["name"]:
            raise ValidationFailedError(
                f"Validation Error: 'assignedUserName' (\"{assigned_user_name}\") does not match "
                f"the name of the user (\"{user['name']}\")."
            )
        return user["name"]

    if replacing and assigned_user_name and assigned_user_name != constants.UNASSIGNED_USER_NAME:
        raise ValidationFailedError(
            "Validation Error: 'assignedUserName' must be \"unassigned\" when 'assignedUser' is not provided."
        )
    return constants.UNASSIGNED_USER_NAME
