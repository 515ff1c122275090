"""Pydantic models for create request payloads."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from llamaio.core.deadline_parser import format_timestamp, parse_deadline


def dedupe_ids(ids: list[str]) -> list[str]:
    """Drop repeated ids, keeping the first occurrence of each."""
    return list(dict.fromkeys(ids))


class UserCreate(BaseModel):
    """Pydantic model for creating a user record."""

    name: str = Field(..., description="Display name of the user")
    email: str = Field(..., description="Email address, stored trimmed and lower-cased")
    pendingTasks: list[str] = Field(default_factory=list, description="Initial pending task IDs")  # noqa: N815

    @field_validator("name")
    @classmethod
    def validate_name_not_blank(cls, v: str) -> str:
        """Validate name is not blank."""
        if not v.strip():
            raise ValueError("Name cannot be empty")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Trim and lower-case the email address."""
        v = v.strip().lower()
        if not v:
            raise ValueError("Email cannot be empty")
        return v

    @field_validator("pendingTasks", mode="before")
    @classmethod
    def coerce_pending_tasks(cls, v: Any) -> Any:
        """Accept a single id or a missing value as well as a list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("pendingTasks")
    @classmethod
    def dedupe_pending_tasks(cls, v: list[str]) -> list[str]:
        """Drop duplicate task ids."""
        return dedupe_ids(v)

    def record_data(self) -> dict[str, Any]:
        """Fields to store for this user."""
        return self.model_dump()


class TaskCreate(BaseModel):
    """Pydantic model for creating a task record."""

    name: str = Field(..., description="Task name")
    description: str = Field(default="", description="Detailed task description")
    deadline: datetime = Field(..., description="Epoch milliseconds or a date string")
    completed: bool = Field(default=False, description="Whether the task is done")
    assignedUser: str = Field(default="", description="Assigned user ID")  # noqa: N815
    assignedUserName: str | None = Field(default=None, description="Must match the assigned user's name")  # noqa: N815

    @field_validator("name")
    @classmethod
    def validate_name_not_blank(cls, v: str) -> str:
        """Validate name is not blank."""
        if not v.strip():
            raise ValueError("Name cannot be empty")
        return v

    @field_validator("description", "assignedUser", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        """Treat null as an empty string."""
        return "" if v is None else v

    @field_validator("deadline", mode="before")
    @classmethod
    def parse_deadline_value(cls, v: Any) -> datetime:
        """Parse epoch milliseconds (numeric or numeric string) or a date string."""
        return parse_deadline(v)

    @field_validator("completed", mode="before")
    @classmethod
    def coerce_completed(cls, v: Any) -> bool:
        """Only a boolean or the string "true" mark a new task as completed."""
        if isinstance(v, bool):
            return v
        return v == "true"

    def record_data(self, *, assigned_user_name: str) -> dict[str, Any]:
        """Fields to store for this task, with the resolved assignee name."""
        return {
            "name": self.name,
            "description": self.description,
            "deadline": format_timestamp(self.deadline),
            "completed": self.completed,
            "assignedUser": self.assignedUser,
            "assignedUserName": assigned_user_name,
        }
