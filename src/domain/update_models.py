"""Update models for database operations."""

from pydantic import BaseModel, Field, field_validator

from src.core.config import constants
from src.domain.create_models import _validate_hobbies, _validate_name
from src.domain.user import Gender


class ProfileUpdate(BaseModel):
    """Editable display attributes of a profile. Points are never editable here."""

    display_name: str | None = None
    gender: Gender | None = None
    age: int | None = None
    phone: str | None = None
    hobbies: list[str] | None = Field(default=None, description="Children only")

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: str | None) -> str | None:
        """Validate name length."""
        return None if v is None else _validate_name(v)

    @field_validator("age")
    @classmethod
    def validate_age(cls, v: int | None) -> int | None:
        """Validate age is a plausible positive number."""
        if v is not None and v < constants.MIN_CHILD_AGE:
            msg = "Age must be positive"
            raise ValueError(msg)
        return v

    @field_validator("hobbies")
    @classmethod
    def validate_hobbies(cls, v: list[str] | None) -> list[str] | None:
        """Validate hobbies come from the fixed list."""
        return None if v is None else _validate_hobbies(v)


class FeedbackUpdate(BaseModel):
    """Reviewer decision payload."""

    feedback: str | None = Field(default=None, description="Reviewer comment for a rejection")

    @field_validator("feedback")
    @classmethod
    def validate_feedback_length(cls, v: str | None) -> str | None:
        """Validate feedback length; blank feedback counts as none."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if len(v) > constants.MAX_FEEDBACK_LENGTH:
            msg = f"Feedback too long (max {constants.MAX_FEEDBACK_LENGTH} characters)"
            raise ValueError(msg)
        return v
