"""Domain models and DTOs."""

from llamaio.domain.create_models import TaskCreate, UserCreate
from llamaio.domain.task import Task
from llamaio.domain.update_models import TaskReplace, UserReplace
from llamaio.domain.user import User


__all__ = [
    "Task",
    "TaskCreate",
    "TaskReplace",
    "User",
    "UserCreate",
    "UserReplace",
]
