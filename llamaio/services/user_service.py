"""User service: CRUD operations that keep task assignments consistent."""

import logging
from typing import Any

from llamaio.core import db_client, filters
from llamaio.core.errors import NotFoundError, ValidationFailedError
from llamaio.core.logging import span
from llamaio.core.query_parser import ReadQuery
from llamaio.domain.create_models import UserCreate
from llamaio.domain.task import Task
from llamaio.domain.update_models import UserReplace
from llamaio.domain.user import User
from llamaio.services import integrity_service, query_service, validation_service


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "email")


async def _load_user(user_id: str) -> User:
    try:
        record = await db_client.get_record(collection="users", record_id=user_id)
    except db_client.RecordNotFoundError as e:
        raise NotFoundError("User not found") from e
    return User.model_validate(record)


async def list_users(*, query: ReadQuery) -> list[dict[str, Any]] | int:
    """List users matching a read query (no default limit).

    Returns:
        Matching user records, or their count for count-only queries
    """
    with span("user_service.list_users"):
        return await query_service.run_read_query(collection="users", query=query)


async def get_user(*, user_id: str, projection: dict[str, bool] | None = None) -> dict[str, Any]:
    """Get a user by ID.

    Raises:
        MalformedIdentifierError: If user_id is not a valid id
        NotFoundError: If the user does not exist
    """
    with span("user_service.get_user"):
        user = await _load_user(user_id)
        return filters.project_record(user.model_dump(by_alias=True), projection)


async def create_user(*, payload: dict[str, Any]) -> dict[str, Any]:
    """Create a user.

    The supplied pendingTasks are stored as given (de-duplicated); the tasks
    they name are not checked or updated.

    Args:
        payload: Request body with name, email and optional pendingTasks

    Returns:
        Created user record

    Raises:
        ValidationFailedError: If name/email is missing or the email is in use
        MalformedIdentifierError: If a pending task id is malformed
    """
    with span("user_service.create_user"):
        validation_service.require_fields(payload, REQUIRED_FIELDS)
        user_in = validation_service.validate_payload(UserCreate, payload)
        validation_service.require_task_ids(user_in.pendingTasks)
        await validation_service.ensure_email_available(email=user_in.email)

        record = await db_client.create_record(collection="users", data=user_in.record_data())
        logger.info("Created user", extra={"user_id": record["_id"]})
        return record


async def replace_user(*, user_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Replace a user, reassigning the tasks added to or dropped from pendingTasks.

    Tasks newly listed in pendingTasks are assigned to this user (and taken off
    their previous assignee's list); tasks no longer listed are unassigned. The
    task updates are applied before the user is overwritten.

    Args:
        user_id: ID of the user to replace
        payload: Request body with name, email and optional pendingTasks

    Returns:
        The replaced user record

    Raises:
        ValidationFailedError: If required fields are missing, the email is in
            use, or an added task is already completed
        NotFoundError: If the user does not exist
        MalformedIdentifierError: If user_id or a pending task id is malformed
    """
    with span("user_service.replace_user"):
        validation_service.require_fields(payload, REQUIRED_FIELDS)
        user_in = validation_service.validate_payload(UserReplace, payload)
        validation_service.require_task_ids(user_in.pendingTasks)

        old_user = await _load_user(user_id)
        await validation_service.ensure_email_available(email=user_in.email, exclude_user_id=old_user.id)

        diff = integrity_service.diff_ids(old_user.pendingTasks, user_in.pendingTasks)
        added_tasks: list[Task] = []
        if diff.added:
            records = await db_client.list_records(collection="tasks", where={"_id": {"$in": diff.added}})
            added_tasks = [Task.model_validate(record) for record in records]

        completed = [task for task in added_tasks if task.completed]
        if completed:
            task_names = ", ".join(f'"{task.name}"' for task in completed)
            logger.info("Rejected completed pending tasks", extra={"user_id": user_id, "task_count": len(completed)})
            raise ValidationFailedError(
                "Validation Error: Cannot add completed tasks to pendingTasks. "
                f"The following tasks are already completed: {task_names}"
            )

        plan = integrity_service.plan_user_replacement(
            user_id=old_user.id,
            user_name=user_in.name,
            diff=diff,
            added_tasks=added_tasks,
        )
        await integrity_service.apply_compensations(plan)

        record = await db_client.replace_record(collection="users", record_id=user_id, data=user_in.record_data())
        logger.info(
            "Replaced user",
            extra={"user_id": user_id, "added_tasks": len(diff.added), "removed_tasks": len(diff.removed)},
        )
        return record


async def delete_user(*, user_id: str) -> dict[str, Any]:
    """Delete a user after unassigning all of their pending tasks.

    Returns:
        The deleted user record

    Raises:
        MalformedIdentifierError: If user_id is not a valid id
        NotFoundError: If the user does not exist (nothing is changed)
    """
    with span("user_service.delete_user"):
        user = await _load_user(user_id)

        await integrity_service.apply_compensations(integrity_service.plan_user_deletion(user))

        record = await db_client.delete_record(collection="users", record_id=user_id)
        logger.info("Deleted user", extra={"user_id": user_id, "unassigned_tasks": len(user.pendingTasks)})
        return record
