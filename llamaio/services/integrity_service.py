"""Bidirectional user <-> task association maintenance.

A user's ``pendingTasks`` and a task's ``assignedUser``/``assignedUserName``
describe the same association from both sides. Every write to one side is
followed (or preceded) by compensating updates to the other side.

Planning is pure: each ``plan_*`` function turns the before/after images of a
write into a list of ``Compensation`` records. ``apply_compensations`` runs
them through the entity store as idempotent set-add / set-remove / field-set
operations, so replaying a partially applied plan is always safe.
"""

import logging
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from llamaio.core import db_client
from llamaio.core.config import constants
from llamaio.core.logging import span
from llamaio.domain.task import Task
from llamaio.domain.user import User


logger = logging.getLogger(__name__)


class CompensationAction(StrEnum):
    """Kinds of compensating update."""

    ADD_PENDING_TASK = "add_pending_task"  # add task id to user.pendingTasks
    REMOVE_PENDING_TASK = "remove_pending_task"  # remove task id from user.pendingTasks
    ASSIGN_TASK = "assign_task"  # set task.assignedUser/assignedUserName
    UNASSIGN_TASK = "unassign_task"  # reset task to unassigned


class Compensation(BaseModel):
    """A single compensating update on the opposite side of the association."""

    model_config = ConfigDict(frozen=True)

    action: CompensationAction
    task_id: str
    user_id: str = ""
    user_name: str = ""


class IdDiff(BaseModel):
    """Identifiers introduced and dropped between two id sequences."""

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


def diff_ids(old_ids: list[str], new_ids: list[str]) -> IdDiff:
    """Set difference by identifier, preserving the order of each input."""
    old_set = set(old_ids)
    new_set = set(new_ids)
    return IdDiff(
        added=list(dict.fromkeys(task_id for task_id in new_ids if task_id not in old_set)),
        removed=list(dict.fromkeys(task_id for task_id in old_ids if task_id not in new_set)),
    )


def plan_user_replacement(*, user_id: str, user_name: str, diff: IdDiff, added_tasks: list[Task]) -> list[Compensation]:
    """Plan the task-side updates for replacing a user's pendingTasks.

    Args:
        user_id: ID of the user being replaced
        user_name: The user's name after replacement
        diff: Pending task ids added and removed by the replacement
        added_tasks: Stored tasks for the added ids (ids with no task are skipped by the store)

    Returns:
        Compensations: added tasks are taken from any previous owner and assigned
        to this user; removed tasks are unassigned
    """
    previous_owner = {task.id: task.assignedUser for task in added_tasks}
    plan: list[Compensation] = []

    for task_id in diff.added:
        owner = previous_owner.get(task_id, "")
        if owner and owner != user_id:
            plan.append(Compensation(action=CompensationAction.REMOVE_PENDING_TASK, task_id=task_id, user_id=owner))
        plan.append(
            Compensation(action=CompensationAction.ASSIGN_TASK, task_id=task_id, user_id=user_id, user_name=user_name)
        )

    plan.extend(Compensation(action=CompensationAction.UNASSIGN_TASK, task_id=task_id) for task_id in diff.removed)
    return plan


def plan_user_deletion(user: User) -> list[Compensation]:
    """Unassign every task the user still has pending."""
    return [Compensation(action=CompensationAction.UNASSIGN_TASK, task_id=task_id) for task_id in user.pendingTasks]


def plan_task_creation(task: Task) -> list[Compensation]:
    """Add a new, incomplete, assigned task to its assignee's pendingTasks."""
    if not task.is_pending:
        return []
    return [Compensation(action=CompensationAction.ADD_PENDING_TASK, task_id=task.id, user_id=task.assignedUser)]


def plan_task_replacement(*, old_task: Task, new_assigned_user: str, now_completed: bool) -> list[Compensation]:
    """Plan the user-side updates for replacing a task.

    Two independent rules; both may fire and every step is idempotent:

    1. Assignee changed: remove the task from the old assignee and, unless the
       task is now completed, add it to the new assignee.
    2. Completion changed: on the relevant user (new assignee, else old one)
       remove the task if it is now completed, add it back otherwise.
    """
    old_user_id = old_task.assignedUser
    new_user_id = new_assigned_user
    task_id = old_task.id
    plan: list[Compensation] = []

    if old_user_id != new_user_id:
        if old_user_id:
            plan.append(Compensation(action=CompensationAction.REMOVE_PENDING_TASK, task_id=task_id, user_id=old_user_id))
        if new_user_id and not now_completed:
            plan.append(Compensation(action=CompensationAction.ADD_PENDING_TASK, task_id=task_id, user_id=new_user_id))

    if old_task.completed != now_completed and (new_user_id or old_user_id):
        relevant_user_id = new_user_id or old_user_id
        action = CompensationAction.REMOVE_PENDING_TASK if now_completed else CompensationAction.ADD_PENDING_TASK
        plan.append(Compensation(action=action, task_id=task_id, user_id=relevant_user_id))

    return plan


def plan_task_deletion(task: Task) -> list[Compensation]:
    """Remove a deleted task from its assignee's pendingTasks."""
    if not task.assignedUser:
        return []
    return [Compensation(action=CompensationAction.REMOVE_PENDING_TASK, task_id=task.id, user_id=task.assignedUser)]


async def _apply(compensation: Compensation) -> None:
    action = compensation.action
    if action == CompensationAction.ADD_PENDING_TASK:
        await db_client.add_to_set(
            collection="users", record_id=compensation.user_id, field="pendingTasks", value=compensation.task_id
        )
    elif action == CompensationAction.REMOVE_PENDING_TASK:
        await db_client.pull_from_set(
            collection="users", record_id=compensation.user_id, field="pendingTasks", value=compensation.task_id
        )
    elif action == CompensationAction.ASSIGN_TASK:
        await db_client.update_records(
            collection="tasks",
            record_ids=[compensation.task_id],
            data={"assignedUser": compensation.user_id, "assignedUserName": compensation.user_name},
        )
    elif action == CompensationAction.UNASSIGN_TASK:
        await db_client.update_records(
            collection="tasks",
            record_ids=[compensation.task_id],
            data={"assignedUser": "", "assignedUserName": constants.UNASSIGNED_USER_NAME},
        )


async def apply_compensations(compensations: list[Compensation]) -> None:
    """Apply compensations in order; the first failure aborts the rest."""
    if not compensations:
        return

    with span("integrity_service.apply_compensations"):
        for compensation in compensations:
            await _apply(compensation)
            logger.info(
                "Applied compensation",
                extra={
                    "action": compensation.action.value,
                    "task_id": compensation.task_id,
                    "user_id": compensation.user_id,
                },
            )
