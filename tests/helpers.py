"""Builders for test data that go through the service layer."""

from typing import Any

from src.core import db_client
from src.domain.create_models import ChildCreate, ParentCreate, RewardCreate, TaskCreate
from src.domain.task import VerificationDecision
from src.modules.family import service as family_service
from src.modules.rewards import service as reward_service
from src.modules.tasks import service as task_service
from src.modules.tasks import verification


PARENT_PASSWORD = "Secret123"


async def make_parent(*, email: str = "parent@example.com", name: str = "Pat Parent") -> dict[str, Any]:
    """Register a parent account."""
    return await family_service.register_parent(
        data=ParentCreate(email=email, password=PARENT_PASSWORD, name=name, age=38),
    )


async def make_child(*, parent_id: str, prefix: str = "kid", name: str = "Kim Kid") -> dict[str, Any]:
    """Provision a child and return the provisioning result."""
    return await family_service.provision_child(
        parent_id=parent_id,
        data=ChildCreate(name=name, email_prefix=prefix, age=9, hobbies=["reading"]),
    )


async def make_task(*, parent_id: str, child_ids: list[str], points: int) -> dict[str, Any]:
    """Create a pending task."""
    return await task_service.create_task(
        parent_id=parent_id,
        data=TaskCreate(description="Tidy the bedroom", points=points, assignee_ids=child_ids),
    )


async def make_completed_task(*, parent_id: str, child_ids: list[str], points: int) -> dict[str, Any]:
    """Create a task and submit it as the first assignee."""
    task = await make_task(parent_id=parent_id, child_ids=child_ids, points=points)
    return await task_service.submit_task(child_id=child_ids[0], task_id=task["id"])


async def earn_points(*, parent_id: str, child_id: str, points: int) -> dict[str, Any]:
    """Give a child points through a verified task so history stays consistent."""
    task = await make_completed_task(parent_id=parent_id, child_ids=[child_id], points=points)
    return await verification.verify_task(
        parent_id=parent_id,
        task_id=task["id"],
        decision=VerificationDecision.APPROVE,
    )


async def make_reward(*, parent_id: str, cost: int, description: str = "Extra screen time") -> dict[str, Any]:
    """Add a reward to a parent's catalog."""
    return await reward_service.create_reward(
        parent_id=parent_id,
        data=RewardCreate(description=description, points_cost=cost),
    )


async def balances(child_id: str) -> tuple[int, int]:
    """Return (profile points, roster mirror points) for a child."""
    profile = await db_client.get_record(collection="profiles", record_id=child_id)
    mirror = await family_service.find_roster_entry(child_id=child_id)
    assert mirror is not None
    return profile["points"], mirror["points"]


async def count(collection: str, filter_query: str = "") -> int:
    """Number of records in a collection matching a filter."""
    records = await db_client.list_records(collection=collection, filter_query=filter_query, per_page=1000)
    return len(records)
