"""Pydantic models validating input before any record is created."""

import re

from pydantic import BaseModel, Field, field_validator

from src.core.config import constants
from src.domain.user import HOBBY_OPTIONS, Gender


PASSWORD_PATTERN = r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)[a-zA-Z\d]{8,}$"
EMAIL_PREFIX_PATTERN = r"^[a-zA-Z0-9._-]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _validate_name(v: str) -> str:
    v = v.strip()
    if len(v) < constants.MIN_NAME_LENGTH:
        msg = f"Name must be at least {constants.MIN_NAME_LENGTH} characters"
        raise ValueError(msg)
    if len(v) > constants.MAX_NAME_LENGTH:
        msg = f"Name too long (max {constants.MAX_NAME_LENGTH} characters)"
        raise ValueError(msg)
    return v


def _validate_hobbies(v: list[str]) -> list[str]:
    if not v:
        msg = "At least one hobby must be selected"
        raise ValueError(msg)
    unknown = [h for h in v if h not in HOBBY_OPTIONS]
    if unknown:
        msg = f"Unknown hobbies: {', '.join(unknown)}"
        raise ValueError(msg)
    # Preserve order, drop repeats
    return list(dict.fromkeys(v))


class ParentCreate(BaseModel):
    """Pydantic model for registering a parent account."""

    email: str = Field(..., description="Sign-in email")
    password: str = Field(..., description="Password (upper, lower and digit, 8+ characters)")
    name: str = Field(..., description="Display name")
    gender: Gender = Field(default=Gender.UNSPECIFIED, description="Self-described gender")
    age: int = Field(..., description="Age in years")
    phone: str | None = Field(default=None, description="Contact phone")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Validate the email looks like an address."""
        v = v.strip().lower()
        if not re.match(EMAIL_PATTERN, v):
            msg = "Invalid email address"
            raise ValueError(msg)
        return v

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        """Validate password has upper, lower and digit characters and is at least 8 long."""
        if not re.match(PASSWORD_PATTERN, v):
            msg = "Password must be 8+ letters or digits including an uppercase letter, a lowercase letter and a digit"
            raise ValueError(msg)
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name length."""
        return _validate_name(v)

    @field_validator("age")
    @classmethod
    def validate_adult(cls, v: int) -> int:
        """Validate the parent is an adult."""
        if v < constants.MIN_PARENT_AGE:
            msg = f"Parents must be at least {constants.MIN_PARENT_AGE} years old"
            raise ValueError(msg)
        return v


class ChildCreate(BaseModel):
    """Pydantic model for provisioning a child account."""

    name: str = Field(..., description="Child's name")
    email_prefix: str = Field(..., description="Local part of the generated sign-in email")
    gender: Gender = Field(default=Gender.UNSPECIFIED, description="Self-described gender")
    age: int = Field(..., description="Age in years")
    hobbies: list[str] = Field(..., description="At least one entry from HOBBY_OPTIONS")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name length."""
        return _validate_name(v)

    @field_validator("email_prefix")
    @classmethod
    def validate_email_prefix(cls, v: str) -> str:
        """Validate prefix contains only letters, digits, dots, underscores and hyphens."""
        v = v.strip()
        if not re.match(EMAIL_PREFIX_PATTERN, v):
            msg = "Email prefix may only contain letters, digits, '.', '_' and '-'"
            raise ValueError(msg)
        return v.lower()

    @field_validator("age")
    @classmethod
    def validate_age(cls, v: int) -> int:
        """Validate child age range."""
        if not constants.MIN_CHILD_AGE <= v <= constants.MAX_CHILD_AGE:
            msg = f"Child age must be between {constants.MIN_CHILD_AGE} and {constants.MAX_CHILD_AGE}"
            raise ValueError(msg)
        return v

    @field_validator("hobbies")
    @classmethod
    def validate_hobbies(cls, v: list[str]) -> list[str]:
        """Validate hobbies come from the fixed list."""
        return _validate_hobbies(v)


class TaskCreate(BaseModel):
    """Pydantic model for creating a task."""

    description: str = Field(..., description="What needs doing")
    points: int = Field(..., description="Points awarded to each assignee")
    assignee_ids: list[str] = Field(..., description="Child profile ids")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        """Validate description is not blank."""
        v = v.strip()
        if not v:
            msg = "Description cannot be empty"
            raise ValueError(msg)
        return v

    @field_validator("points")
    @classmethod
    def validate_points(cls, v: int) -> int:
        """Validate point value range."""
        if not constants.MIN_TASK_POINTS <= v <= constants.MAX_TASK_POINTS:
            msg = f"Points must be between {constants.MIN_TASK_POINTS} and {constants.MAX_TASK_POINTS}"
            raise ValueError(msg)
        return v

    @field_validator("assignee_ids")
    @classmethod
    def validate_assignees(cls, v: list[str]) -> list[str]:
        """Validate at least one assignee, without repeats."""
        unique = list(dict.fromkeys(a.strip() for a in v if a.strip()))
        if not unique:
            msg = "Assign the task to at least one child"
            raise ValueError(msg)
        return unique


class TaskSubmission(BaseModel):
    """Pydantic model for a child's completion submission."""

    completion_notes: str | None = Field(default=None, description="Notes on how the task was done")
    evidence_ref: str | None = Field(default=None, description="Reference to uploaded evidence")

    @field_validator("completion_notes")
    @classmethod
    def validate_notes_length(cls, v: str | None) -> str | None:
        """Validate notes length."""
        if v is not None and len(v) > constants.MAX_COMPLETION_NOTES_LENGTH:
            msg = f"Notes too long (max {constants.MAX_COMPLETION_NOTES_LENGTH} characters)"
            raise ValueError(msg)
        return v


class RewardCreate(BaseModel):
    """Pydantic model for creating a reward."""

    description: str = Field(..., description="What the child receives")
    points_cost: int = Field(..., description="Points deducted on redemption")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        """Validate description is not blank."""
        v = v.strip()
        if not v:
            msg = "Description cannot be empty"
            raise ValueError(msg)
        return v

    @field_validator("points_cost")
    @classmethod
    def validate_cost(cls, v: int) -> int:
        """Validate cost range."""
        if not constants.MIN_REWARD_COST <= v <= constants.MAX_REWARD_COST:
            msg = f"Cost must be between {constants.MIN_REWARD_COST} and {constants.MAX_REWARD_COST}"
            raise ValueError(msg)
        return v


class AnnouncementUpdate(BaseModel):
    """Pydantic model for replacing the announcement."""

    title: str = Field(..., description="Headline")
    content: str = Field(..., description="Body text")
    is_active: bool = Field(default=True, description="Whether the announcement is shown")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate title length."""
        v = v.strip()
        if not constants.MIN_ANNOUNCEMENT_TITLE_LENGTH <= len(v) <= constants.MAX_ANNOUNCEMENT_TITLE_LENGTH:
            msg = (
                f"Title must be {constants.MIN_ANNOUNCEMENT_TITLE_LENGTH}"
                f"-{constants.MAX_ANNOUNCEMENT_TITLE_LENGTH} characters"
            )
            raise ValueError(msg)
        return v

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Validate content length."""
        v = v.strip()
        if not constants.MIN_ANNOUNCEMENT_CONTENT_LENGTH <= len(v) <= constants.MAX_ANNOUNCEMENT_CONTENT_LENGTH:
            msg = (
                f"Content must be {constants.MIN_ANNOUNCEMENT_CONTENT_LENGTH}"
                f"-{constants.MAX_ANNOUNCEMENT_CONTENT_LENGTH} characters"
            )
            raise ValueError(msg)
        return v
