"""Site-wide announcement model."""

from pydantic import BaseModel, Field


class Announcement(BaseModel):
    """The single announcement shown to every signed-in user while active."""

    id: str = Field(..., description="Always the fixed announcement record id")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    title: str = Field(..., description="Headline")
    content: str = Field(..., description="Body text")
    is_active: bool = Field(default=False, description="Whether the announcement is shown")
    updated_by: str = Field(..., description="Administrator identity id of the last editor")
