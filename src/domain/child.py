"""Family roster domain model."""

from pydantic import BaseModel, Field

from src.domain.user import Gender


class RosterEntry(BaseModel):
    """A parent's denormalized mirror of one child's profile."""

    id: str = Field(..., description="Roster entry id")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    parent_id: str = Field(..., description="Owning parent's profile id")
    profile_id: str = Field(..., description="The child's profile id")
    name: str = Field(..., description="Mirrored child name")
    email: str = Field(..., description="Child's sign-in email")
    points: int = Field(default=0, ge=0, description="Mirror of the profile's point balance")
    initial_secret: str = Field(..., description="Generated initial password, shown to the parent")
    gender: Gender = Field(default=Gender.UNSPECIFIED, description="Mirrored gender")
    age: int | None = Field(default=None, description="Mirrored age")
    hobbies: list[str] = Field(default_factory=list, description="Mirrored hobbies")
