"""Unit tests for paired point mutations and balance auditing."""

import pytest

from src.core import db_client
from src.modules.family import service as family_service
from src.modules.rewards import service as reward_service
from src.services import points_service
from tests.helpers import earn_points, make_reward


@pytest.mark.unit
class TestPointOps:
    """Tests for credit and debit op builders."""

    def test_credit_ops_touch_profile_and_mirror(self):
        ops = points_service.credit_ops(child_id="c1", mirror_id="m1", amount=5)

        assert [(op.collection, op.record_id, op.data, op.floor) for op in ops] == [
            ("profiles", "c1", {"points": 5}, None),
            ("children", "m1", {"points": 5}, None),
        ]

    def test_debit_ops_carry_zero_floor(self):
        ops = points_service.debit_ops(child_id="c1", mirror_id="m1", amount=5)

        assert [(op.data["points"], op.floor) for op in ops] == [(-5, 0), (-5, 0)]

    @pytest.mark.parametrize("amount", [0, -3])
    def test_non_positive_amounts_rejected(self, amount):
        with pytest.raises(ValueError, match="must be positive"):
            points_service.credit_ops(child_id="c1", mirror_id="m1", amount=amount)
        with pytest.raises(ValueError, match="must be positive"):
            points_service.debit_ops(child_id="c1", mirror_id="m1", amount=amount)


@pytest.mark.unit
class TestAudit:
    """Tests for audit_child_points."""

    async def test_balance_matches_history(self, parent, child):
        """Earned minus redeemed equals both stored balances."""
        await earn_points(parent_id=parent["id"], child_id=child["id"], points=30)
        await earn_points(parent_id=parent["id"], child_id=child["id"], points=25)
        reward = await make_reward(parent_id=parent["id"], cost=40)
        await reward_service.redeem_reward(child_id=child["id"], reward_id=reward["id"])

        audit = await points_service.audit_child_points(child_id=child["id"])

        assert audit["earned"] == 55
        assert audit["redeemed"] == 40
        assert audit["expected"] == 15
        assert audit["profile_points"] == 15
        assert audit["mirror_points"] == 15
        assert audit["consistent"] is True

    async def test_drifted_mirror_is_reported(self, parent, child):
        await earn_points(parent_id=parent["id"], child_id=child["id"], points=10)
        entry = await family_service.find_roster_entry(child_id=child["id"])
        await db_client.update_record(collection="children", record_id=entry["id"], data={"points": 7})

        audit = await points_service.audit_child_points(child_id=child["id"])

        assert audit["profile_points"] == 10
        assert audit["mirror_points"] == 7
        assert audit["consistent"] is False

    async def test_missing_mirror_is_inconsistent(self, parent, child):
        entry = await family_service.find_roster_entry(child_id=child["id"])
        await db_client.delete_record(collection="children", record_id=entry["id"])

        audit = await points_service.audit_child_points(child_id=child["id"])

        assert audit["mirror_points"] is None
        assert audit["consistent"] is False
