"""Task status transitions guarded by compare-and-swap on the current status."""

import logging
from typing import Any

from src.core import db_client
from src.core.db_client import PreconditionFailedError, WriteOp
from src.core.errors import StateConflictError
from src.core.logging import span
from src.domain.task import TaskStatus


logger = logging.getLogger(__name__)

TASKS = "tasks"

# Only rejection moves a task backwards; verified is terminal
TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.COMPLETED},
    TaskStatus.COMPLETED: {TaskStatus.VERIFIED, TaskStatus.PENDING},
    TaskStatus.VERIFIED: set(),
}


def can_transition(*, current: TaskStatus, target: TaskStatus) -> bool:
    """Return True if a task may move from `current` to `target`."""
    return target in TRANSITIONS[current]


def require_status(*, task: dict[str, Any], expected: TaskStatus, target: TaskStatus) -> None:
    """Check a freshly read task is in `expected` and may move to `target`.

    Raises:
        StateConflictError: If the task is in any other state
    """
    current = TaskStatus(task["status"])
    if current != expected or not can_transition(current=current, target=target):
        msg = f"Cannot move task {task['id']} to {target}: it is {current}, expected {expected}"
        raise StateConflictError(msg, current_state=current)


def transition_op(*, task_id: str, expected: TaskStatus, target: TaskStatus, data: dict[str, Any]) -> WriteOp:
    """Build a status write that only applies while the task is still in `expected`."""
    if not can_transition(current=expected, target=target):
        msg = f"Invalid task transition {expected} -> {target}"
        raise ValueError(msg)
    return db_client.merge_op(TASKS, task_id, {**data, "status": target}, expected={"status": expected})


def conflict_from(error: PreconditionFailedError, *, task_id: str) -> StateConflictError:
    """Translate a failed status precondition into a StateConflictError."""
    current_state = error.current.get("status")
    msg = f"Task {task_id} changed concurrently (now {current_state})"
    return StateConflictError(msg, current_state=current_state)


async def transition_task(
    *,
    task_id: str,
    expected: TaskStatus,
    target: TaskStatus,
    data: dict[str, Any] | None = None,
    extra_ops: list[WriteOp] | None = None,
) -> dict[str, Any]:
    """Apply a guarded status change, plus any writes that must commit with it.

    Raises:
        StateConflictError: If the task is no longer in `expected`
        RecordNotFoundError: If the task was deleted
    """
    with span("task_state_machine.transition_task"):
        ops = [transition_op(task_id=task_id, expected=expected, target=target, data=data or {})]
        ops.extend(extra_ops or [])
        try:
            updated, *_ = await db_client.atomic_batch(ops)
        except PreconditionFailedError as e:
            raise conflict_from(e, task_id=task_id) from e

        logger.info("Transitioned task %s from %s to %s", task_id, expected, target)
        return updated or {}
