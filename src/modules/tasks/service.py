"""Task service for creating, listing and submitting tasks."""

import logging
from typing import Any

from src.core import db_client, live_query
from src.core.config import constants
from src.core.db_client import RecordNotFoundError, sanitize_param
from src.core.logging import span
from src.domain.create_models import TaskCreate, TaskSubmission
from src.domain.task import TaskAction, TaskStatus
from src.modules.family import service as family_service
from src.modules.tasks import state_machine


logger = logging.getLogger(__name__)

TASKS = "tasks"
TASK_LOGS = "task_logs"


def task_log_op(
    *,
    task: dict[str, Any],
    actor_id: str,
    action: TaskAction,
    child_id: str | None = None,
    points: int = 0,
    notes: str | None = None,
) -> db_client.WriteOp:
    """Build the audit log entry for a task action."""
    return db_client.create_op(
        TASK_LOGS,
        {
            "task_id": task["id"],
            "parent_id": task["parent_id"],
            "child_id": child_id,
            "actor_id": actor_id,
            "action": action,
            "points": points,
            "notes": notes,
            "timestamp": db_client.now_timestamp(),
        },
    )


async def create_task(*, parent_id: str, data: TaskCreate) -> dict[str, Any]:
    """Create a task assigned to one or more of the parent's children.

    Args:
        parent_id: Owning parent's profile id
        data: Validated task details

    Returns:
        Created task record

    Raises:
        PermissionError: If parent_id is not a parent
        ValueError: If an assignee is not on the parent's roster
    """
    with span("task_service.create_task"):
        await family_service.require_parent(parent_id=parent_id)

        roster = {entry["profile_id"]: entry for entry in await family_service.list_children(parent_id=parent_id)}

        # Guard: Every assignee must be this parent's child
        unknown = [child_id for child_id in data.assignee_ids if child_id not in roster]
        if unknown:
            msg = f"Not children of this parent: {', '.join(unknown)}"
            raise ValueError(msg)

        record = await db_client.create_record(
            collection=TASKS,
            data={
                "parent_id": parent_id,
                "description": data.description,
                "points": data.points,
                "assignee_ids": data.assignee_ids,
                "assignee_names": [roster[child_id]["name"] for child_id in data.assignee_ids],
                "status": TaskStatus.PENDING,
            },
        )

        logger.info("Created task %s worth %d for %d children", record["id"], data.points, len(data.assignee_ids))
        return record


async def get_task(*, task_id: str) -> dict[str, Any]:
    """Get task by ID.

    Raises:
        RecordNotFoundError: If the task does not exist
    """
    return await db_client.get_record(collection=TASKS, record_id=task_id)


async def get_parent_task(*, parent_id: str, task_id: str) -> dict[str, Any]:
    """Get a task owned by a parent.

    Raises:
        RecordNotFoundError: If the task does not exist
        PermissionError: If the task belongs to another parent
    """
    task = await get_task(task_id=task_id)
    if task["parent_id"] != parent_id:
        msg = f"Task {task_id} does not belong to parent {parent_id}"
        raise PermissionError(msg)
    return task


def _parent_filter(*, parent_id: str, status: TaskStatus | None) -> str:
    filter_query = f'parent_id = "{sanitize_param(parent_id)}"'
    if status is not None:
        filter_query += f' && status = "{status}"'
    return filter_query


def _child_filter(*, child_id: str, parent_id: str, status: TaskStatus | None) -> str:
    filter_query = f'parent_id = "{sanitize_param(parent_id)}" && assignee_ids ?= "{sanitize_param(child_id)}"'
    if status is not None:
        filter_query += f' && status = "{status}"'
    return filter_query


async def list_parent_tasks(*, parent_id: str, status: TaskStatus | None = None) -> list[dict[str, Any]]:
    """List a parent's tasks, newest first, optionally filtered by status."""
    with span("task_service.list_parent_tasks"):
        return await db_client.list_records(
            collection=TASKS,
            filter_query=_parent_filter(parent_id=parent_id, status=status),
            sort="-created",
            per_page=constants.FULL_LIST_PER_PAGE,
        )


async def list_child_tasks(*, child_id: str, status: TaskStatus | None = None) -> list[dict[str, Any]]:
    """List tasks assigned to a child by their parent, newest first."""
    with span("task_service.list_child_tasks"):
        child = await family_service.require_child(child_id=child_id)
        return await db_client.list_records(
            collection=TASKS,
            filter_query=_child_filter(child_id=child_id, parent_id=child["parent_id"], status=status),
            sort="-created",
            per_page=constants.FULL_LIST_PER_PAGE,
        )


def watch_parent_tasks(*, parent_id: str) -> live_query.Subscription:
    """Live feed of a parent's tasks."""
    return live_query.subscribe(
        collection=TASKS,
        filter_query=_parent_filter(parent_id=parent_id, status=None),
        sort="-created",
    )


async def watch_child_tasks(*, child_id: str) -> live_query.Subscription:
    """Live feed of the tasks assigned to a child."""
    child = await family_service.require_child(child_id=child_id)
    return live_query.subscribe(
        collection=TASKS,
        filter_query=_child_filter(child_id=child_id, parent_id=child["parent_id"], status=None),
        sort="-created",
    )


async def delete_task(*, parent_id: str, task_id: str) -> None:
    """Delete a task in any state. History entries are left in place.

    Raises:
        RecordNotFoundError: If the task does not exist
        PermissionError: If the task belongs to another parent
    """
    with span("task_service.delete_task"):
        await get_parent_task(parent_id=parent_id, task_id=task_id)
        await db_client.delete_record(collection=TASKS, record_id=task_id)
        logger.info("Deleted task %s", task_id)


async def submit_task(*, child_id: str, task_id: str, submission: TaskSubmission | None = None) -> dict[str, Any]:
    """Mark a pending task completed on behalf of an assignee.

    No points move at this stage; they are awarded on verification.

    Args:
        child_id: Submitting child's profile id
        task_id: Task ID
        submission: Optional completion notes and evidence reference

    Returns:
        Updated task record

    Raises:
        RecordNotFoundError: If the task does not exist
        PermissionError: If the child is not an assignee
        StateConflictError: If the task is not pending
    """
    with span("task_service.submit_task"):
        submission = submission or TaskSubmission()
        try:
            task = await get_task(task_id=task_id)
        except RecordNotFoundError:
            logger.warning("Submit for missing task %s", task_id)
            raise

        # Guard: Only assignees may submit
        if child_id not in task["assignee_ids"]:
            msg = f"Child {child_id} is not assigned to task {task_id}"
            raise PermissionError(msg)

        state_machine.require_status(task=task, expected=TaskStatus.PENDING, target=TaskStatus.COMPLETED)

        updated = await state_machine.transition_task(
            task_id=task_id,
            expected=TaskStatus.PENDING,
            target=TaskStatus.COMPLETED,
            data={
                "completion_notes": submission.completion_notes,
                "evidence_ref": submission.evidence_ref,
                "completed_at": db_client.now_timestamp(),
                "completed_by": child_id,
            },
            extra_ops=[
                task_log_op(
                    task=task,
                    actor_id=child_id,
                    action=TaskAction.SUBMITTED,
                    child_id=child_id,
                    notes=submission.completion_notes,
                )
            ],
        )

        logger.info("Child %s submitted task %s", child_id, task_id)
        return updated
