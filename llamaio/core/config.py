"""Configuration management for llamaio."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service identity
    service_name: str = Field(default="llamaio", description="Service name reported to Logfire")
    environment: str = Field(default="development", description="Deployment environment name")

    # SQLite Configuration
    sqlite_db_path: str = Field(default="data/llamaio.db", description="Path to the SQLite database file")
    database_token: str | None = Field(
        default=None, description="Database connection secret (only its presence is ever reported)"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value

    @property
    def masked_connection_string(self) -> str:
        """Connection string as it may be shown to clients."""
        return "******" if self.database_token else "Not Set"


# Application Constants
class Constants:
    """Application-wide constants."""

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_CREATED: int = 201
    HTTP_NO_CONTENT: int = 204
    HTTP_BAD_REQUEST: int = 400
    HTTP_NOT_FOUND: int = 404
    HTTP_SERVER_ERROR: int = 500

    # Pagination Defaults
    DEFAULT_TASK_LIMIT: int = 100  # Implicit limit for task list queries

    # Assignment
    UNASSIGNED_USER_NAME: str = "unassigned"

    # Identifiers
    RECORD_ID_LENGTH: int = 24  # Hex characters in a record id


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
