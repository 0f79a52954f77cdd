"""Unit tests for parent registration, child provisioning and the roster."""

import pytest
from pydantic import ValidationError

from src.core import auth_client, db_client
from src.core.config import settings
from src.core.db_client import DatabaseError, RecordNotFoundError
from src.core.errors import AuthenticationError, IdentityExistsError
from src.domain.create_models import ChildCreate, ParentCreate
from src.domain.update_models import ProfileUpdate
from src.domain.user import UserRole
from src.modules.family import service as family_service
from tests.helpers import PARENT_PASSWORD, count, make_child, make_parent


@pytest.mark.unit
class TestRegisterParent:
    """Tests for register_parent."""

    async def test_profile_shares_identity_id(self, db):
        profile = await make_parent()

        identity_id = await auth_client.authenticate(email="parent@example.com", secret=PARENT_PASSWORD)
        assert profile["id"] == identity_id
        assert profile["role"] == UserRole.PARENT
        assert profile["display_name"] == "Pat Parent"

    async def test_duplicate_email_rejected(self, db):
        await make_parent()

        with pytest.raises(IdentityExistsError):
            await make_parent(name="Another Parent")

        assert await count("profiles") == 1

    async def test_identity_removed_when_profile_write_fails(self, db, monkeypatch):
        real_create_record = db_client.create_record

        async def failing_create_record(*, collection, **kwargs):
            if collection == "profiles":
                raise DatabaseError("disk full")
            return await real_create_record(collection=collection, **kwargs)

        monkeypatch.setattr(db_client, "create_record", failing_create_record)

        with pytest.raises(DatabaseError, match="disk full"):
            await make_parent()

        monkeypatch.setattr(db_client, "create_record", real_create_record)
        assert await count(auth_client.IDENTITIES_COLLECTION) == 0

    def test_minor_cannot_register(self):
        with pytest.raises(ValidationError, match="at least 18"):
            ParentCreate(email="teen@example.com", password=PARENT_PASSWORD, name="Teen Parent", age=17)

    def test_weak_password_rejected(self):
        with pytest.raises(ValidationError, match="Password"):
            ParentCreate(email="pat@example.com", password="password", name="Pat Parent", age=30)


@pytest.mark.unit
class TestProvisionChild:
    """Tests for provision_child."""

    async def test_creates_identity_profile_and_roster_entry(self, parent):
        result = await make_child(parent_id=parent["id"], prefix="Kim.K")

        profile = result["profile"]
        entry = result["roster_entry"]
        assert profile["email"] == f"kim.k@{settings.child_email_domain}"
        assert profile["role"] == UserRole.CHILD
        assert profile["parent_id"] == parent["id"]
        assert profile["points"] == 0
        assert entry["profile_id"] == profile["id"]
        assert entry["points"] == 0
        assert entry["hobbies"] == ["reading"]
        assert entry["initial_secret"] == result["initial_secret"]

    async def test_child_can_sign_in_with_initial_secret(self, parent):
        result = await make_child(parent_id=parent["id"])

        identity_id = await auth_client.authenticate(
            email=result["profile"]["email"],
            secret=result["initial_secret"],
        )
        assert identity_id == result["profile"]["id"]

    async def test_parent_identity_is_unaffected(self, parent):
        await make_child(parent_id=parent["id"])

        assert await auth_client.authenticate(email="parent@example.com", secret=PARENT_PASSWORD) == parent["id"]

    async def test_email_collision_leaves_no_orphans(self, parent, child):
        """A second child with the same prefix fails without writing anything."""
        profiles_before = await count("profiles")

        with pytest.raises(IdentityExistsError):
            await make_child(parent_id=parent["id"], prefix="kid", name="Other Kid")

        assert await count("profiles") == profiles_before
        assert await count("children") == 1
        assert await count(auth_client.IDENTITIES_COLLECTION) == 2

    async def test_failed_batch_removes_identity(self, parent, monkeypatch):
        real_batch = db_client.atomic_batch

        async def failing_batch(ops):
            raise DatabaseError("injected")

        monkeypatch.setattr(db_client, "atomic_batch", failing_batch)

        with pytest.raises(DatabaseError, match="injected"):
            await make_child(parent_id=parent["id"])

        monkeypatch.setattr(db_client, "atomic_batch", real_batch)
        assert await count("children") == 0
        assert await count(auth_client.IDENTITIES_COLLECTION) == 1
        with pytest.raises(AuthenticationError):
            await auth_client.authenticate(email=f"kid@{settings.child_email_domain}", secret="anything")

    async def test_child_cannot_provision(self, parent, child):
        with pytest.raises(PermissionError):
            await family_service.provision_child(
                parent_id=child["id"],
                data=ChildCreate(name="Sub Kid", email_prefix="sub", age=5, hobbies=["music"]),
            )

    def test_unknown_hobby_rejected(self):
        with pytest.raises(ValidationError, match="Unknown hobbies"):
            ChildCreate(name="Kim Kid", email_prefix="kim", age=9, hobbies=["skydiving"])

    def test_at_least_one_hobby_required(self):
        with pytest.raises(ValidationError, match="At least one hobby"):
            ChildCreate(name="Kim Kid", email_prefix="kim", age=9, hobbies=[])

    def test_bad_email_prefix_rejected(self):
        with pytest.raises(ValidationError, match="Email prefix"):
            ChildCreate(name="Kim Kid", email_prefix="kim@home", age=9, hobbies=["music"])


@pytest.mark.unit
class TestRoster:
    """Tests for roster reads and removal."""

    async def test_list_children_sorted_by_name(self, parent):
        await make_child(parent_id=parent["id"], prefix="zed", name="Zed Kid")
        await make_child(parent_id=parent["id"], prefix="amy", name="Amy Kid")

        children = await family_service.list_children(parent_id=parent["id"])

        assert [c["name"] for c in children] == ["Amy Kid", "Zed Kid"]

    async def test_roster_is_family_scoped(self, parent, child):
        other = await make_parent(email="other@example.com", name="Other Parent")

        assert await family_service.list_children(parent_id=other["id"]) == []
        with pytest.raises(RecordNotFoundError):
            await family_service.get_child(parent_id=other["id"], child_id=child["id"])

    async def test_remove_child_deletes_all_records(self, parent, child):
        await family_service.remove_child(parent_id=parent["id"], child_id=child["id"])

        assert await family_service.find_roster_entry(child_id=child["id"]) is None
        with pytest.raises(RecordNotFoundError):
            await family_service.get_profile(user_id=child["id"])
        assert await count(auth_client.IDENTITIES_COLLECTION) == 1

    async def test_remove_child_tolerates_identity_cleanup_failure(self, parent, child, monkeypatch):
        async def failing_delete_identity(*, identity_id):
            raise DatabaseError("auth backend down")

        monkeypatch.setattr(auth_client, "delete_identity", failing_delete_identity)

        await family_service.remove_child(parent_id=parent["id"], child_id=child["id"])

        assert await family_service.find_roster_entry(child_id=child["id"]) is None

    async def test_other_parent_cannot_remove(self, parent, child):
        other = await make_parent(email="other@example.com", name="Other Parent")

        with pytest.raises(RecordNotFoundError):
            await family_service.remove_child(parent_id=other["id"], child_id=child["id"])

        assert await family_service.find_roster_entry(child_id=child["id"]) is not None


@pytest.mark.unit
class TestUpdateProfile:
    """Tests for update_profile."""

    async def test_child_update_syncs_roster_mirror(self, child):
        updated = await family_service.update_profile(
            user_id=child["id"],
            update=ProfileUpdate(display_name="Kimberly", age=10, hobbies=["music", "coding"]),
        )

        entry = await family_service.find_roster_entry(child_id=child["id"])
        assert updated["display_name"] == "Kimberly"
        assert entry["name"] == "Kimberly"
        assert entry["age"] == 10
        assert entry["hobbies"] == ["music", "coding"]

    async def test_points_untouched_by_profile_edit(self, child):
        updated = await family_service.update_profile(user_id=child["id"], update=ProfileUpdate(age=11))

        assert updated["points"] == 0

    async def test_parent_update_sets_name(self, parent):
        updated = await family_service.update_profile(
            user_id=parent["id"],
            update=ProfileUpdate(display_name="Patricia", phone="555-0100"),
        )

        assert updated["name"] == "Patricia"
        assert updated["phone"] == "555-0100"

    async def test_parent_hobbies_rejected(self, parent):
        with pytest.raises(ValueError, match="Hobbies only apply"):
            await family_service.update_profile(user_id=parent["id"], update=ProfileUpdate(hobbies=["music"]))

    async def test_parent_age_must_stay_adult(self, parent):
        with pytest.raises(ValueError, match="at least 18"):
            await family_service.update_profile(user_id=parent["id"], update=ProfileUpdate(age=12))

    async def test_child_age_range_enforced(self, child):
        with pytest.raises(ValueError, match="between 1 and 18"):
            await family_service.update_profile(user_id=child["id"], update=ProfileUpdate(age=30))

    async def test_child_phone_only_update_rejected(self, child):
        with pytest.raises(ValueError, match="Phone only applies"):
            await family_service.update_profile(user_id=child["id"], update=ProfileUpdate(phone="555-0100"))

    async def test_empty_update_rejected(self, child):
        with pytest.raises(ValueError, match="No profile fields"):
            await family_service.update_profile(user_id=child["id"], update=ProfileUpdate())
