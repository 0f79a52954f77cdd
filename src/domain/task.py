"""Task domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field


class TaskStatus(StrEnum):
    """Task lifecycle state."""

    PENDING = "pending"
    COMPLETED = "completed"
    VERIFIED = "verified"


class VerificationDecision(StrEnum):
    """Reviewer decision on a completed task."""

    APPROVE = "approve"
    REJECT = "reject"


class TaskAction(StrEnum):
    """Actions recorded in the task audit log."""

    SUBMITTED = "submitted"
    POINTS_AWARDED = "points_awarded"
    REJECTED = "rejected"


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    parent_id: str = Field(..., description="Owning parent's profile id")
    description: str = Field(..., description="What needs doing")
    points: int = Field(..., gt=0, description="Points awarded to each assignee on verification")
    assignee_ids: list[str] = Field(default_factory=list, description="Child profile ids")
    assignee_names: list[str] = Field(default_factory=list, description="Child names at assignment time")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Current lifecycle state")
    completion_notes: str | None = Field(default=None, description="Child's notes on completion")
    evidence_ref: str | None = Field(default=None, description="Reference to uploaded completion evidence")
    feedback: str | None = Field(default=None, description="Reviewer feedback from the last rejection")
    completed_at: str | None = Field(default=None, description="When the task was submitted")
    completed_by: str | None = Field(default=None, description="Child who submitted the task")
    verified_at: str | None = Field(default=None, description="When the task was verified")
    verified_by: str | None = Field(default=None, description="Parent who verified the task")
    returned_at: str | None = Field(default=None, description="When the task was last returned to the child")


class TaskLog(BaseModel):
    """Task log entry data transfer object for audit trail."""

    id: str = Field(..., description="Unique log ID from database")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    task_id: str = Field(..., description="ID of task this log relates to")
    parent_id: str = Field(..., description="Owning parent's profile id")
    child_id: str | None = Field(default=None, description="Child affected by the action")
    actor_id: str = Field(..., description="Profile id of whoever performed the action")
    action: TaskAction = Field(..., description="Action performed")
    points: int = Field(default=0, description="Points credited by the action")
    notes: str | None = Field(default=None, description="Notes or feedback attached to the action")
    timestamp: str = Field(..., description="When the action occurred (ISO format)")
