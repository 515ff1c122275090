"""Task service: CRUD operations that keep users' pendingTasks consistent."""

import logging
from typing import Any

from llamaio.core import db_client, filters
from llamaio.core.errors import NotFoundError, TaskAlreadyCompletedError
from llamaio.core.logging import span
from llamaio.core.query_parser import ReadQuery
from llamaio.domain.create_models import TaskCreate
from llamaio.domain.task import Task
from llamaio.domain.update_models import TaskReplace
from llamaio.services import integrity_service, query_service, validation_service


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "deadline")


async def _load_task(task_id: str) -> Task:
    try:
        record = await db_client.get_record(collection="tasks", record_id=task_id)
    except db_client.RecordNotFoundError as e:
        raise NotFoundError("Task not found") from e
    return Task.model_validate(record)


async def list_tasks(*, query: ReadQuery) -> list[dict[str, Any]] | int:
    """List tasks matching a read query.

    Returns:
        Matching task records, or their count for count-only queries
    """
    with span("task_service.list_tasks"):
        return await query_service.run_read_query(collection="tasks", query=query)


async def get_task(*, task_id: str, projection: dict[str, bool] | None = None) -> dict[str, Any]:
    """Get a task by ID.

    Raises:
        MalformedIdentifierError: If task_id is not a valid id
        NotFoundError: If the task does not exist
    """
    with span("task_service.get_task"):
        task = await _load_task(task_id)
        return filters.project_record(task.model_dump(by_alias=True), projection)


async def create_task(*, payload: dict[str, Any]) -> dict[str, Any]:
    """Create a task and add it to its assignee's pendingTasks.

    Args:
        payload: Request body with name, deadline and optional description,
            completed, assignedUser and assignedUserName

    Returns:
        Created task record

    Raises:
        ValidationFailedError: If name/deadline is missing or invalid, or
            assignedUserName does not match the assigned user
        NotFoundError: If the assigned user does not exist
        MalformedIdentifierError: If assignedUser is malformed
    """
    with span("task_service.create_task"):
        validation_service.require_fields(payload, REQUIRED_FIELDS)
        task_in = validation_service.validate_payload(TaskCreate, payload)
        assigned_user_name = await validation_service.resolve_assignment(
            assigned_user=task_in.assignedUser,
            assigned_user_name=task_in.assignedUserName,
            replacing=False,
        )

        record = await db_client.create_record(
            collection="tasks",
            data=task_in.record_data(assigned_user_name=assigned_user_name),
        )
        task = Task.model_validate(record)

        await integrity_service.apply_compensations(integrity_service.plan_task_creation(task))

        logger.info("Created task", extra={"task_id": task.id, "assigned_user": task.assignedUser})
        return record


async def replace_task(*, task_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Replace a task, moving it between users' pendingTasks as needed.

    The pendingTasks updates are applied before the task is overwritten.

    Args:
        task_id: ID of the task to replace
        payload: Full task body

    Returns:
        The replaced task record

    Raises:
        ValidationFailedError: If fields are missing/invalid or the assignment
            does not match the referenced user
        TaskAlreadyCompletedError: If the stored task is completed
        NotFoundError: If the task or the assigned user does not exist
        MalformedIdentifierError: If task_id or assignedUser is malformed
    """
    with span("task_service.replace_task"):
        validation_service.require_fields(payload, REQUIRED_FIELDS)
        task_in = validation_service.validate_payload(TaskReplace, payload)

        old_task = await _load_task(task_id)
        if old_task.completed:
            raise TaskAlreadyCompletedError

        assigned_user_name = await validation_service.resolve_assignment(
            assigned_user=task_in.assignedUser,
            assigned_user_name=task_in.assignedUserName,
            replacing=True,
        )

        plan = integrity_service.plan_task_replacement(
            old_task=old_task,
            new_assigned_user=task_in.assignedUser,
            now_completed=task_in.completed,
        )
        await integrity_service.apply_compensations(plan)

        record = await db_client.replace_record(
            collection="tasks",
            record_id=task_id,
            data=task_in.record_data(assigned_user_name=assigned_user_name),
        )
        logger.info(
            "Replaced task",
            extra={"task_id": task_id, "old_user": old_task.assignedUser, "new_user": task_in.assignedUser},
        )
        return record


async def delete_task(*, task_id: str) -> dict[str, Any]:
    """Delete a task after removing it from its assignee's pendingTasks.

    Returns:
        The deleted task record

    Raises:
        MalformedIdentifierError: If task_id is not a valid id
        NotFoundError: If the task does not exist
    """
    with span("task_service.delete_task"):
        task = await _load_task(task_id)

        await integrity_service.apply_compensations(integrity_service.plan_task_deletion(task))

        record = await db_client.delete_record(collection="tasks", record_id=task_id)
        logger.info("Deleted task", extra={"task_id": task_id})
        return record
