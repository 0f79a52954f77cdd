"""Unit tests for task verification."""

import asyncio

import pytest
from pydantic import ValidationError

from src.core import db_client
from src.core.config import settings
from src.core.errors import AssigneeRecordMissingError, IntegrityError, StateConflictError
from src.domain.task import TaskAction, TaskStatus, VerificationDecision
from src.modules.family import service as family_service
from src.modules.tasks import service as task_service
from src.modules.tasks import verification
from tests.helpers import balances, count, make_child, make_completed_task, make_parent, make_task


APPROVE = VerificationDecision.APPROVE
REJECT = VerificationDecision.REJECT


@pytest.mark.unit
class TestApprove:
    """Tests for approving completed tasks."""

    async def test_approve_credits_profile_and_mirror(self, parent, child):
        """A verified 10 point task leaves the child and its mirror at 10."""
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)

        updated = await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        assert updated["status"] == TaskStatus.VERIFIED
        assert updated["verified_by"] == parent["id"]
        assert await balances(child["id"]) == (10, 10)

    async def test_multi_assignee_task_credits_each_child_once(self, parent, child):
        sibling = (await make_child(parent_id=parent["id"], prefix="sib", name="Sam Sib"))["profile"]
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"], sibling["id"]], points=15)

        await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        assert await balances(child["id"]) == (15, 15)
        assert await balances(sibling["id"]) == (15, 15)
        assert await count("task_logs", f'action = "{TaskAction.POINTS_AWARDED}"') == 2

    async def test_second_approval_is_a_state_conflict(self, parent, child):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)
        await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        with pytest.raises(StateConflictError):
            await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        assert await balances(child["id"]) == (10, 10)

    async def test_concurrent_approvals_credit_once(self, parent, child):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)

        results = await asyncio.gather(
            verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE),
            verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE),
            return_exceptions=True,
        )

        assert sum(isinstance(r, StateConflictError) for r in results) == 1
        assert await balances(child["id"]) == (10, 10)

    async def test_pending_task_cannot_be_verified(self, parent, child):
        task = await make_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)

        with pytest.raises(StateConflictError) as exc_info:
            await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        assert exc_info.value.current_state == TaskStatus.PENDING

    async def test_verified_task_never_regresses(self, parent, child):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)
        await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        with pytest.raises(StateConflictError):
            await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=REJECT)
        with pytest.raises(StateConflictError):
            await task_service.submit_task(child_id=child["id"], task_id=task["id"])

        stored = await task_service.get_task(task_id=task["id"])
        assert stored["status"] == TaskStatus.VERIFIED

    async def test_other_parent_cannot_verify(self, parent, child):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)
        other = await make_parent(email="other@example.com", name="Other Parent")

        with pytest.raises(PermissionError):
            await verification.verify_task(parent_id=other["id"], task_id=task["id"], decision=APPROVE)

        assert await balances(child["id"]) == (0, 0)


@pytest.mark.unit
class TestApproveIntegrity:
    """Tests for missing records and injected failures during approval."""

    async def test_missing_mirror_aborts_with_every_missing_id(self, parent, child):
        sibling = (await make_child(parent_id=parent["id"], prefix="sib", name="Sam Sib"))["profile"]
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"], sibling["id"]], points=15)
        entry = await family_service.find_roster_entry(child_id=sibling["id"])
        await db_client.delete_record(collection="children", record_id=entry["id"])

        with pytest.raises(AssigneeRecordMissingError) as exc_info:
            await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        assert exc_info.value.missing_assignee_ids == [sibling["id"]]
        assert await balances(child["id"]) == (0, 0)
        stored = await task_service.get_task(task_id=task["id"])
        assert stored["status"] == TaskStatus.COMPLETED

    async def test_record_vanishing_mid_batch_is_an_integrity_error(self, parent, child, monkeypatch):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)
        real_credit_ops = verification.points_service.credit_ops

        def credit_ops_for_missing_mirror(*, child_id, mirror_id, amount):
            return real_credit_ops(child_id=child_id, mirror_id="gone", amount=amount)

        monkeypatch.setattr(verification.points_service, "credit_ops", credit_ops_for_missing_mirror)

        with pytest.raises(IntegrityError, match="nothing was applied"):
            await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        stored = await task_service.get_task(task_id=task["id"])
        assert stored["status"] == TaskStatus.COMPLETED
        assert (await db_client.get_record(collection="profiles", record_id=child["id"]))["points"] == 0

    async def test_injected_failure_persists_nothing(self, parent, child, monkeypatch):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)
        real_apply = db_client._apply
        calls = {"n": 0}

        async def failing_apply(conn, op):
            calls["n"] += 1
            # Status write and profile credit succeed, then the mirror credit fails
            if calls["n"] == 3:
                raise db_client.DatabaseError("injected")
            return await real_apply(conn, op)

        monkeypatch.setattr(db_client, "_apply", failing_apply)

        with pytest.raises(db_client.DatabaseError, match="injected"):
            await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        monkeypatch.setattr(db_client, "_apply", real_apply)
        stored = await task_service.get_task(task_id=task["id"])
        assert stored["status"] == TaskStatus.COMPLETED
        assert await balances(child["id"]) == (0, 0)
        assert await count("task_logs", f'action = "{TaskAction.POINTS_AWARDED}"') == 0


@pytest.mark.unit
class TestReject:
    """Tests for returning completed tasks to pending."""

    async def test_reject_returns_task_with_feedback(self, parent, child):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)

        updated = await verification.verify_task(
            parent_id=parent["id"],
            task_id=task["id"],
            decision=REJECT,
            feedback="try again",
        )

        assert updated["status"] == TaskStatus.PENDING
        assert updated["feedback"] == "try again"
        assert await balances(child["id"]) == (0, 0)

    async def test_blank_feedback_uses_default(self, parent, child):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)

        updated = await verification.verify_task(
            parent_id=parent["id"],
            task_id=task["id"],
            decision=REJECT,
            feedback="   ",
        )

        assert updated["feedback"] == settings.default_rejection_feedback

    async def test_repeated_rejections_never_touch_points(self, parent, child):
        """Reject, resubmit and reject again; the balance stays put."""
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)

        for _ in range(3):
            await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=REJECT)
            with pytest.raises(StateConflictError):
                await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=REJECT)
            await task_service.submit_task(child_id=child["id"], task_id=task["id"])

        assert await balances(child["id"]) == (0, 0)
        assert await count("task_logs", f'action = "{TaskAction.REJECTED}"') == 3

    async def test_rejected_task_can_be_approved_after_resubmission(self, parent, child):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)
        await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=REJECT)
        await task_service.submit_task(child_id=child["id"], task_id=task["id"])

        await verification.verify_task(parent_id=parent["id"], task_id=task["id"], decision=APPROVE)

        assert await balances(child["id"]) == (10, 10)

    async def test_overlong_feedback_rejected_before_any_write(self, parent, child):
        task = await make_completed_task(parent_id=parent["id"], child_ids=[child["id"]], points=10)

        with pytest.raises(ValidationError, match="Feedback too long"):
            await verification.verify_task(
                parent_id=parent["id"],
                task_id=task["id"],
                decision=REJECT,
                feedback="x" * 501,
            )

        stored = await task_service.get_task(task_id=task["id"])
        assert stored["status"] == TaskStatus.COMPLETED
