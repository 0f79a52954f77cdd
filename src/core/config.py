"""Configuration management for growthally."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEV_SECRET_KEY = "dev-secret-key-change-me"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Document store
    sqlite_db_path: str = Field(default="./data/growthally.db", description="Path to the SQLite document store")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Sessions
    secret_key: str = Field(default=DEV_SECRET_KEY, description="Key used to sign session tokens")
    session_max_age_seconds: int = Field(default=86400, description="Lifetime of a signed session token")
    is_production: bool = Field(default=False, description="Enable production-only hardening")

    # Family accounts
    child_email_domain: str = Field(default="growthally.com", description="Domain appended to child email prefixes")
    administrator_emails: list[str] = Field(
        default_factory=list,
        description="Identities allowed to manage the global announcement",
    )

    # Task review
    default_rejection_feedback: str = Field(
        default="Please review and try again.",
        description="Feedback attached when a task is returned without a reviewer comment",
    )

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

    def is_administrator(self, email: str | None) -> bool:
        """Return True if the email belongs to a configured administrator."""
        if not email:
            return False
        return email.strip().lower() in {e.strip().lower() for e in self.administrator_emails}


# Application Constants
class Constants:
    """Application-wide constants."""

    # Task limits
    MIN_TASK_POINTS: int = 1
    MAX_TASK_POINTS: int = 1000
    MAX_FEEDBACK_LENGTH: int = 500
    MAX_COMPLETION_NOTES_LENGTH: int = 1000

    # Reward limits
    MIN_REWARD_COST: int = 1
    MAX_REWARD_COST: int = 10000

    # Accounts
    MIN_PARENT_AGE: int = 18
    MIN_CHILD_AGE: int = 1
    MAX_CHILD_AGE: int = 18
    MIN_NAME_LENGTH: int = 2
    MAX_NAME_LENGTH: int = 50
    CHILD_SECRET_LENGTH: int = 8
    PASSWORD_HASH_ROUNDS: int = 12

    # Announcements
    ANNOUNCEMENT_RECORD_ID: str = "current"
    MIN_ANNOUNCEMENT_TITLE_LENGTH: int = 3
    MAX_ANNOUNCEMENT_TITLE_LENGTH: int = 100
    MIN_ANNOUNCEMENT_CONTENT_LENGTH: int = 10
    MAX_ANNOUNCEMENT_CONTENT_LENGTH: int = 1000

    # Queries
    FULL_LIST_PER_PAGE: int = 1000


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
