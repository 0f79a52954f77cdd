"""User profile domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class UserRole(StrEnum):
    """Role of an authenticated identity."""

    PARENT = "parent"
    CHILD = "child"


class Gender(StrEnum):
    """Self-described gender."""

    MALE = "male"
    FEMALE = "female"
    UNSPECIFIED = "unspecified"


# Hobbies a child profile may pick from
HOBBY_OPTIONS: tuple[str, ...] = (
    "sports",
    "reading",
    "music",
    "dance",
    "math",
    "crafts",
    "baking",
    "calligraphy",
    "painting",
    "coding",
)


class UserProfile(BaseModel):
    """Canonical per-user record; `points` and `parent_id` are only meaningful for children."""

    id: str = Field(..., description="Identity id (profiles share their identity's id)")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    role: UserRole = Field(..., description="parent or child")
    email: str = Field(..., description="Sign-in email")
    display_name: str = Field(default="", description="Name shown in the UI")
    name: str = Field(default="", description="Full name")
    gender: Gender = Field(default=Gender.UNSPECIFIED, description="Self-described gender")
    age: int | None = Field(default=None, description="Age in years")
    phone: str | None = Field(default=None, description="Contact phone (parents only)")
    parent_id: str | None = Field(default=None, description="Owning parent's profile id (children only)")
    points: int = Field(default=0, ge=0, description="Current point balance (children only)")
    hobbies: list[str] = Field(default_factory=list, description="Selected hobbies (children only)")
