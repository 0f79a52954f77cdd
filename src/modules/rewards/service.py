"""Reward service for the catalog and point redemption."""

import logging
from typing import Any

from src.core import db_client, live_query
from src.core.config import constants
from src.core.db_client import DuplicateRecordError, PreconditionFailedError, RecordNotFoundError, sanitize_param
from src.core.errors import InsufficientPointsError, IntegrityError, StateConflictError
from src.core.logging import log_with_user_context, span
from src.domain.create_models import RewardCreate
from src.modules.family import service as family_service
from src.services import points_service


logger = logging.getLogger(__name__)

REWARDS = "rewards"
REDEMPTIONS = "redemptions"


async def create_reward(*, parent_id: str, data: RewardCreate) -> dict[str, Any]:
    """Add a reward to a parent's catalog.

    Raises:
        PermissionError: If parent_id is not a parent
    """
    with span("reward_service.create_reward"):
        await family_service.require_parent(parent_id=parent_id)
        record = await db_client.create_record(
            collection=REWARDS,
            data={"parent_id": parent_id, "description": data.description, "points_cost": data.points_cost},
        )
        logger.info("Created reward %s costing %d", record["id"], data.points_cost)
        return record


async def list_rewards(*, parent_id: str) -> list[dict[str, Any]]:
    """List a parent's rewards, cheapest first."""
    with span("reward_service.list_rewards"):
        return await db_client.list_records(
            collection=REWARDS,
            filter_query=f'parent_id = "{sanitize_param(parent_id)}"',
            sort="points_cost",
            per_page=constants.FULL_LIST_PER_PAGE,
        )


async def list_child_rewards(*, child_id: str) -> list[dict[str, Any]]:
    """List the rewards a child can redeem (their parent's catalog)."""
    child = await family_service.require_child(child_id=child_id)
    return await list_rewards(parent_id=child["parent_id"])


def watch_rewards(*, parent_id: str) -> live_query.Subscription:
    """Live feed of a parent's reward catalog."""
    return live_query.subscribe(
        collection=REWARDS,
        filter_query=f'parent_id = "{sanitize_param(parent_id)}"',
        sort="points_cost",
    )


async def delete_reward(*, parent_id: str, reward_id: str) -> None:
    """Delete a reward. Past redemptions keep their snapshots.

    Raises:
        RecordNotFoundError: If the reward does not exist
        PermissionError: If the reward belongs to another parent
    """
    with span("reward_service.delete_reward"):
        reward = await db_client.get_record(collection=REWARDS, record_id=reward_id)
        if reward["parent_id"] != parent_id:
            msg = f"Reward {reward_id} does not belong to parent {parent_id}"
            raise PermissionError(msg)
        await db_client.delete_record(collection=REWARDS, record_id=reward_id)
        logger.info("Deleted reward %s", reward_id)


async def _find_by_key(*, child_id: str, idempotency_key: str) -> dict[str, Any] | None:
    return await db_client.get_first_record(
        collection=REDEMPTIONS,
        filter_query=(
            f'child_id = "{sanitize_param(child_id)}" && idempotency_key = "{sanitize_param(idempotency_key)}"'
        ),
    )


def _replayed(existing: dict[str, Any], *, reward_id: str, idempotency_key: str) -> dict[str, Any]:
    """Return a prior redemption for a repeated key, refusing reuse of the key for another reward."""
    if existing["reward_id"] != reward_id:
        msg = f"Idempotency key {idempotency_key} was already used to redeem reward {existing['reward_id']}"
        raise StateConflictError(msg, current_state="redeemed")
    logger.info("Replayed redemption %s for key %s", existing["id"], idempotency_key)
    return existing


async def redeem_reward(*, child_id: str, reward_id: str, idempotency_key: str | None = None) -> dict[str, Any]:
    """Exchange a child's points for a reward.

    The profile decrement, the roster mirror decrement and the redemption
    record are written in one atomic batch. Repeating a call with the same
    idempotency key returns the first redemption without deducting again.

    Args:
        child_id: Redeeming child's profile id
        reward_id: Reward to claim
        idempotency_key: Optional client token identifying this attempt

    Returns:
        The redemption record

    Raises:
        PermissionError: If the caller is not a child or the reward is from another family
        RecordNotFoundError: If the reward does not exist
        InsufficientPointsError: If the balance is below the cost, now or at commit time
        IntegrityError: If the child's roster mirror is missing
    """
    with span("reward_service.redeem_reward"):
        child = await family_service.require_child(child_id=child_id)
        reward = await db_client.get_record(collection=REWARDS, record_id=reward_id)

        # Guard: Rewards are family-scoped
        if reward["parent_id"] != child["parent_id"]:
            msg = f"Reward {reward_id} is not offered to child {child_id}"
            raise PermissionError(msg)

        if idempotency_key:
            existing = await _find_by_key(child_id=child_id, idempotency_key=idempotency_key)
            if existing is not None:
                return _replayed(existing, reward_id=reward_id, idempotency_key=idempotency_key)

        cost = reward["points_cost"]

        # Guard: Balance covers the cost
        if child["points"] < cost:
            raise InsufficientPointsError(required=cost, available=child["points"])

        mirror = await family_service.find_roster_entry(child_id=child_id)
        if mirror is None:
            msg = f"Child {child_id} has no roster entry; redemption not applied"
            raise IntegrityError(msg)

        ops = points_service.debit_ops(child_id=child_id, mirror_id=mirror["id"], amount=cost)
        ops.append(
            db_client.create_op(
                REDEMPTIONS,
                {
                    "reward_id": reward_id,
                    "description": reward["description"],
                    "points_cost": cost,
                    "child_id": child_id,
                    "parent_id": child["parent_id"],
                    "claimed_at": db_client.now_timestamp(),
                    "idempotency_key": idempotency_key,
                },
            )
        )

        try:
            *_, redemption = await db_client.atomic_batch(ops)
        except PreconditionFailedError as e:
            # Balance dropped below the cost after it was read
            available = int(e.current.get("points", 0))
            raise InsufficientPointsError(required=cost, available=available) from e
        except DuplicateRecordError:
            if not idempotency_key:
                raise
            existing = await _find_by_key(child_id=child_id, idempotency_key=idempotency_key)
            if existing is None:
                raise
            logger.info("Concurrent redemption with key %s already applied", idempotency_key)
            return _replayed(existing, reward_id=reward_id, idempotency_key=idempotency_key)
        except RecordNotFoundError as e:
            msg = f"Redemption of reward {reward_id} abandoned, nothing was applied: {e}"
            raise IntegrityError(msg) from e

        log_with_user_context(
            logger,
            "info",
            "Reward redeemed",
            user_id=child_id,
            reward_id=reward_id,
            points_cost=cost,
        )
        return redemption or {}


async def list_redemptions(*, child_id: str) -> list[dict[str, Any]]:
    """List a child's redemption history, newest first."""
    with span("reward_service.list_redemptions"):
        return await db_client.list_records(
            collection=REDEMPTIONS,
            filter_query=f'child_id = "{sanitize_param(child_id)}"',
            sort="-claimed_at",
            per_page=constants.FULL_LIST_PER_PAGE,
        )


async def list_family_redemptions(*, parent_id: str) -> list[dict[str, Any]]:
    """List every redemption made by a parent's children, newest first."""
    with span("reward_service.list_family_redemptions"):
        return await db_client.list_records(
            collection=REDEMPTIONS,
            filter_query=f'parent_id = "{sanitize_param(parent_id)}"',
            sort="-claimed_at",
            per_page=constants.FULL_LIST_PER_PAGE,
        )
