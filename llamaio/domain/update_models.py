"""Pydantic models for whole-entity replacement payloads."""

from typing import Any

from pydantic import field_validator

from llamaio.domain.create_models import TaskCreate, UserCreate


class UserReplace(UserCreate):
    """Replacement payload for a user; a missing or non-list pendingTasks means none."""

    @field_validator("pendingTasks", mode="before")
    @classmethod
    def coerce_pending_tasks(cls, v: Any) -> Any:
        """Anything other than a list replaces the pending tasks with an empty list."""
        return v if isinstance(v, list) else []


class TaskReplace(TaskCreate):
    """Replacement payload for a task.

    String "true"/"false" are coerced; any other value is left to the lax
    boolean validation ("1", "yes", 0 ... are accepted, the rest rejected).
    """

    @field_validator("completed", mode="before")
    @classmethod
    def coerce_completed(cls, v: Any) -> Any:
        """Coerce the literal strings "true"/"false"; default a missing value to False."""
        if v is None:
            return False
        if v in ("true", "false"):
            return v == "true"
        return v
