"""Reward catalog and redemption history models."""

from pydantic import BaseModel, Field


class Reward(BaseModel):
    """A redeemable item defined by a parent."""

    id: str = Field(..., description="Unique reward ID")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    parent_id: str = Field(..., description="Owning parent's profile id")
    description: str = Field(..., description="What the child receives")
    points_cost: int = Field(..., gt=0, description="Points deducted on redemption")


class Redemption(BaseModel):
    """Append-only record of a successful redemption.

    Description and cost are snapshots taken at claim time, so the record
    survives deletion of the reward it came from.
    """

    id: str = Field(..., description="Unique redemption ID")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    reward_id: str = Field(..., description="Originating reward (may no longer exist)")
    description: str = Field(..., description="Reward description at claim time")
    points_cost: int = Field(..., gt=0, description="Reward cost at claim time")
    child_id: str = Field(..., description="Claiming child's profile id")
    parent_id: str = Field(..., description="Owning parent's profile id")
    claimed_at: str = Field(..., description="Claim timestamp (ISO format)")
    idempotency_key: str | None = Field(default=None, description="Client token deduplicating retries")
