"""Unit tests for sign-in sessions and bearer tokens."""

import pytest

from src.core import db_client
from src.core.config import settings
from src.core.errors import AuthenticationError
from src.domain.user import UserRole
from src.services import session_service
from tests.helpers import PARENT_PASSWORD, make_child, make_parent


@pytest.mark.unit
class TestSignIn:
    """Tests for parent and child sign-in."""

    async def test_parent_sign_in_creates_session(self, parent):
        context = await session_service.sign_in_parent(email="parent@example.com", password=PARENT_PASSWORD)

        assert context.user_id == parent["id"]
        assert context.role == UserRole.PARENT
        assert context.profile["display_name"] == "Pat Parent"
        assert not context.is_administrator
        session = await db_client.get_record(collection=session_service.SESSIONS, record_id=context.session_id)
        assert session["identity_id"] == parent["id"]

    async def test_parent_with_apostrophe_in_email_can_sign_in(self, db):
        parent = await make_parent(email="o'brien@example.com")

        context = await session_service.sign_in_parent(email="o'brien@example.com", password=PARENT_PASSWORD)

        assert context.user_id == parent["id"]

    async def test_child_sign_in_with_initial_secret(self, parent):
        result = await make_child(parent_id=parent["id"])

        context = await session_service.sign_in_child(
            email=result["profile"]["email"],
            password=result["initial_secret"],
        )

        assert context.user_id == result["profile"]["id"]
        assert context.role == UserRole.CHILD

    async def test_role_mismatch_rejected(self, parent):
        with pytest.raises(AuthenticationError, match="cannot sign in as a child"):
            await session_service.sign_in_child(email="parent@example.com", password=PARENT_PASSWORD)

    async def test_wrong_password_rejected(self, parent):
        with pytest.raises(AuthenticationError):
            await session_service.sign_in_parent(email="parent@example.com", password="Wrong1234")

    async def test_administrator_flag_from_settings(self, parent, monkeypatch):
        monkeypatch.setattr(settings, "administrator_emails", ["Parent@Example.com"])

        context = await session_service.sign_in_parent(email="parent@example.com", password=PARENT_PASSWORD)

        assert context.is_administrator


@pytest.mark.unit
class TestSessionLifecycle:
    """Tests for lookup, refresh, sign-out and tokens."""

    @pytest.fixture
    async def context(self, parent):
        return await session_service.sign_in_parent(email="parent@example.com", password=PARENT_PASSWORD)

    async def test_token_resolves_to_session(self, context):
        token = session_service.issue_token(context)

        resolved = await session_service.resolve_token(token)

        assert resolved.session_id == context.session_id
        assert resolved.user_id == context.user_id

    async def test_tampered_token_rejected(self, context):
        token = session_service.issue_token(context)

        with pytest.raises(AuthenticationError, match="Invalid session token"):
            await session_service.resolve_token(token[:-2] + "xx")

    async def test_signed_out_session_is_gone(self, context):
        token = session_service.issue_token(context)

        assert await session_service.sign_out(session_id=context.session_id) is True
        assert await session_service.sign_out(session_id=context.session_id) is False
        with pytest.raises(AuthenticationError, match="Session not found"):
            await session_service.resolve_token(token)

    async def test_expired_session_is_deleted(self, context):
        await db_client.update_record(
            collection=session_service.SESSIONS,
            record_id=context.session_id,
            data={"expires_at": "2000-01-01T00:00:00Z"},
        )

        with pytest.raises(AuthenticationError, match="Session expired"):
            await session_service.get_session(session_id=context.session_id)

        with pytest.raises(AuthenticationError, match="Session not found"):
            await session_service.get_session(session_id=context.session_id)

    async def test_refresh_extends_expiry_and_reloads_profile(self, context):
        await db_client.update_record(
            collection=session_service.SESSIONS,
            record_id=context.session_id,
            data={"expires_at": "2999-01-01T00:00:00Z"},
        )
        await db_client.update_record(collection="profiles", record_id=context.user_id, data={"display_name": "Pat"})

        refreshed = await session_service.refresh_session(session_id=context.session_id)

        assert refreshed.expires_at < "2999-01-01T00:00:00Z"
        assert refreshed.profile["display_name"] == "Pat"

    async def test_session_of_removed_profile_rejected(self, context):
        await db_client.delete_record(collection="profiles", record_id=context.user_id)

        with pytest.raises(AuthenticationError, match="no longer exists"):
            await session_service.get_session(session_id=context.session_id)


@pytest.mark.unit
def test_is_expired():
    assert session_service.is_expired({"expires_at": "2000-01-01T00:00:00Z"})
    assert not session_service.is_expired({"expires_at": "2999-01-01T00:00:00Z"})
