"""User domain model."""

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """User data transfer object, keyed by the stored document field names."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id", description="Unique user ID (24 hex characters)")
    name: str = Field(..., description="Display name of the user")
    email: str = Field(..., description="Trimmed, lower-cased unique email address")
    pendingTasks: list[str] = Field(default_factory=list, description="IDs of incomplete assigned tasks")  # noqa: N815
    dateCreated: str = Field(..., description="Creation timestamp (ISO format)")  # noqa: N815
