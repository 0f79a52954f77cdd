"""Paired profile and roster point mutations, plus balance auditing.

Every change to a child's balance is expressed as two relative increments,
one on the profile and one on its roster mirror, which callers place in the
same atomic batch as the rest of their writes.
"""

import logging
from typing import Any

from src.core import db_client
from src.core.config import constants
from src.core.db_client import WriteOp, sanitize_param
from src.core.logging import span
from src.domain.task import TaskAction


logger = logging.getLogger(__name__)

PROFILES = "profiles"
ROSTER = "children"


def credit_ops(*, child_id: str, mirror_id: str, amount: int) -> list[WriteOp]:
    """Build the increments that add `amount` points to a child and its mirror."""
    if amount <= 0:
        msg = f"Credit amount must be positive, got {amount}"
        raise ValueError(msg)
    return [
        db_client.increment_op(PROFILES, child_id, "points", amount),
        db_client.increment_op(ROSTER, mirror_id, "points", amount),
    ]


def debit_ops(*, child_id: str, mirror_id: str, amount: int) -> list[WriteOp]:
    """Build the decrements that remove `amount` points from a child and its mirror.

    Both carry a floor of zero, so a balance that dropped since it was read
    fails the batch instead of going negative.
    """
    if amount <= 0:
        msg = f"Debit amount must be positive, got {amount}"
        raise ValueError(msg)
    return [
        db_client.increment_op(PROFILES, child_id, "points", -amount, floor=0),
        db_client.increment_op(ROSTER, mirror_id, "points", -amount, floor=0),
    ]


async def _sum_field(*, collection: str, filter_query: str, field_name: str) -> int:
    total = 0
    page = 1
    while True:
        records = await db_client.list_records(
            collection=collection,
            filter_query=filter_query,
            page=page,
            per_page=constants.FULL_LIST_PER_PAGE,
        )
        total += sum(int(r[field_name]) for r in records)
        if len(records) < constants.FULL_LIST_PER_PAGE:
            return total
        page += 1


async def audit_child_points(*, child_id: str) -> dict[str, Any]:
    """Recompute a child's expected balance from history and compare.

    Expected points are the sum of `points_awarded` task log entries minus
    the cost of every redemption.

    Args:
        child_id: Child profile id

    Returns:
        Dict with profile_points, mirror_points (None when no mirror exists),
        earned, redeemed, expected and a `consistent` flag

    Raises:
        RecordNotFoundError: If the child profile does not exist
    """
    with span("points_service.audit_child_points"):
        profile = await db_client.get_record(collection=PROFILES, record_id=child_id)
        mirror = await db_client.get_first_record(
            collection=ROSTER,
            filter_query=f'profile_id = "{sanitize_param(child_id)}"',
        )

        earned = await _sum_field(
            collection="task_logs",
            filter_query=f'child_id = "{sanitize_param(child_id)}" && action = "{TaskAction.POINTS_AWARDED}"',
            field_name="points",
        )
        redeemed = await _sum_field(
            collection="redemptions",
            filter_query=f'child_id = "{sanitize_param(child_id)}"',
            field_name="points_cost",
        )

        expected = earned - redeemed
        mirror_points = mirror["points"] if mirror else None
        consistent = profile["points"] == expected and mirror_points == profile["points"]

        if not consistent:
            logger.warning(
                "Points audit mismatch for child %s",
                child_id,
                extra={"profile": profile["points"], "mirror": mirror_points, "expected": expected},
            )

        return {
            "child_id": child_id,
            "profile_points": profile["points"],
            "mirror_points": mirror_points,
            "earned": earned,
            "redeemed": redeemed,
            "expected": expected,
            "consistent": consistent,
        }
