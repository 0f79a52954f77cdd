"""Verification of completed tasks.

Approving a task moves it to verified and credits every assignee's profile
and roster mirror in one atomic batch. Rejecting returns it to pending with
feedback and never touches points.
"""

import logging
from typing import Any

from src.core import db_client
from src.core.config import settings
from src.core.db_client import PreconditionFailedError, RecordNotFoundError
from src.core.errors import AssigneeRecordMissingError, IntegrityError
from src.core.logging import span
from src.domain.task import TaskAction, TaskStatus, VerificationDecision
from src.domain.update_models import FeedbackUpdate
from src.modules.family import service as family_service
from src.modules.tasks import service as task_service
from src.modules.tasks import state_machine
from src.services import points_service


logger = logging.getLogger(__name__)


async def _resolve_assignees(*, task: dict[str, Any]) -> list[tuple[str, str]]:
    """Return (child_id, mirror_id) for every assignee.

    Raises:
        AssigneeRecordMissingError: Naming every assignee whose profile or mirror is missing
    """
    resolved = []
    missing = []
    for child_id in task["assignee_ids"]:
        try:
            await db_client.get_record(collection="profiles", record_id=child_id)
        except RecordNotFoundError:
            missing.append(child_id)
            continue
        entry = await family_service.find_roster_entry(child_id=child_id)
        if entry is None:
            missing.append(child_id)
            continue
        resolved.append((child_id, entry["id"]))

    if missing:
        logger.error("Cannot verify task %s: missing records for %s", task["id"], missing)
        raise AssigneeRecordMissingError(missing)
    return resolved


async def verify_task(
    *,
    parent_id: str,
    task_id: str,
    decision: VerificationDecision,
    feedback: str | None = None,
) -> dict[str, Any]:
    """Approve or reject a completed task.

    Args:
        parent_id: Reviewing parent's profile id
        task_id: Task ID
        decision: APPROVE awards points, REJECT returns the task to the child
        feedback: Reviewer comment; rejection uses the default feedback when empty

    Returns:
        Updated task record

    Raises:
        RecordNotFoundError: If the task does not exist
        PermissionError: If the task belongs to another parent
        StateConflictError: If the task is not completed (including a concurrent review)
        AssigneeRecordMissingError: If any assignee's profile or mirror is missing
        IntegrityError: If a record disappeared while the batch was being applied
    """
    with span("verification_service.verify_task"):
        feedback = FeedbackUpdate(feedback=feedback).feedback
        task = await task_service.get_parent_task(parent_id=parent_id, task_id=task_id)

        if decision == VerificationDecision.REJECT:
            return await _reject(parent_id=parent_id, task=task, feedback=feedback)
        return await _approve(parent_id=parent_id, task=task, feedback=feedback)


async def _approve(*, parent_id: str, task: dict[str, Any], feedback: str | None) -> dict[str, Any]:
    state_machine.require_status(task=task, expected=TaskStatus.COMPLETED, target=TaskStatus.VERIFIED)
    assignees = await _resolve_assignees(task=task)

    ops = [
        state_machine.transition_op(
            task_id=task["id"],
            expected=TaskStatus.COMPLETED,
            target=TaskStatus.VERIFIED,
            data={"verified_at": db_client.now_timestamp(), "verified_by": parent_id, "feedback": feedback},
        )
    ]
    for child_id, mirror_id in assignees:
        ops.extend(points_service.credit_ops(child_id=child_id, mirror_id=mirror_id, amount=task["points"]))
        ops.append(
            task_service.task_log_op(
                task=task,
                actor_id=parent_id,
                action=TaskAction.POINTS_AWARDED,
                child_id=child_id,
                points=task["points"],
                notes=feedback,
            )
        )

    try:
        updated, *_ = await db_client.atomic_batch(ops)
    except PreconditionFailedError as e:
        logger.warning("Task %s was reviewed concurrently", task["id"])
        raise state_machine.conflict_from(e, task_id=task["id"]) from e
    except RecordNotFoundError as e:
        msg = f"Verification of task {task['id']} abandoned, nothing was applied: {e}"
        raise IntegrityError(msg) from e

    logger.info(
        "Verified task %s, awarded %d points to %d children",
        task["id"],
        task["points"],
        len(assignees),
        extra={"task_id": task["id"], "assignees": [child_id for child_id, _ in assignees]},
    )
    return updated or {}


async def _reject(*, parent_id: str, task: dict[str, Any], feedback: str | None) -> dict[str, Any]:
    state_machine.require_status(task=task, expected=TaskStatus.COMPLETED, target=TaskStatus.PENDING)
    feedback = feedback or settings.default_rejection_feedback

    updated = await state_machine.transition_task(
        task_id=task["id"],
        expected=TaskStatus.COMPLETED,
        target=TaskStatus.PENDING,
        data={"feedback": feedback, "returned_at": db_client.now_timestamp()},
        extra_ops=[
            task_service.task_log_op(task=task, actor_id=parent_id, action=TaskAction.REJECTED, notes=feedback),
        ],
    )

    logger.info("Returned task %s to pending", task["id"])
    return updated
