"""Task domain model."""

from pydantic import BaseModel, ConfigDict, Field

from llamaio.core.config import constants


class Task(BaseModel):
    """Task data transfer object, keyed by the stored document field names."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id", description="Unique task ID (24 hex characters)")
    name: str = Field(..., description="Task name")
    description: str = Field(default="", description="Detailed task description")
    deadline: str = Field(..., description="Deadline (ISO format)")
    completed: bool = Field(default=False, description="Whether the task is done")
    assignedUser: str = Field(default="", description="Assigned user ID, empty when unassigned")  # noqa: N815
    assignedUserName: str = Field(  # noqa: N815
        default=constants.UNASSIGNED_USER_NAME,
        description="Assigned user's name when the task was last written",
    )
    dateCreated: str = Field(..., description="Creation timestamp (ISO format)")  # noqa: N815

    @property
    def is_pending(self) -> bool:
        """True if the task belongs in its assignee's pendingTasks."""
        return bool(self.assignedUser) and not self.completed
