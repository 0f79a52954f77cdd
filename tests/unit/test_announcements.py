"""Unit tests for the global announcement."""

import pytest
from pydantic import ValidationError

from src.domain.create_models import AnnouncementUpdate
from src.modules.announcements import service as announcement_service
from src.services.session_service import SessionContext


def _session(*, is_administrator: bool) -> SessionContext:
    return SessionContext(
        session_id="s1",
        user_id="admin1",
        role="parent",
        email="admin@example.com",
        is_administrator=is_administrator,
        expires_at="2999-01-01T00:00:00Z",
    )


NOTICE = AnnouncementUpdate(title="Summer break", content="Tasks are paused until September.")


@pytest.mark.unit
class TestAnnouncement:
    """Tests for setting and reading the announcement."""

    async def test_no_announcement_initially(self, db):
        assert await announcement_service.get_active_announcement() is None

    async def test_administrator_sets_announcement(self, db):
        await announcement_service.set_announcement(session=_session(is_administrator=True), data=NOTICE)

        current = await announcement_service.get_active_announcement()

        assert current["title"] == "Summer break"
        assert current["updated_by"] == "admin1"

    async def test_second_update_replaces_single_record(self, db):
        admin = _session(is_administrator=True)
        await announcement_service.set_announcement(session=admin, data=NOTICE)
        await announcement_service.set_announcement(
            session=admin,
            data=AnnouncementUpdate(title="Welcome back", content="New tasks are up for the school year."),
        )

        subscription = announcement_service.watch_announcement()
        try:
            records = await anext(subscription)
        finally:
            subscription.unsubscribe()

        assert [r["title"] for r in records] == ["Welcome back"]

    async def test_inactive_announcement_hidden(self, db):
        await announcement_service.set_announcement(
            session=_session(is_administrator=True),
            data=NOTICE.model_copy(update={"is_active": False}),
        )

        assert await announcement_service.get_active_announcement() is None

    async def test_non_administrator_rejected(self, db):
        with pytest.raises(PermissionError):
            await announcement_service.set_announcement(session=_session(is_administrator=False), data=NOTICE)

        assert await announcement_service.get_active_announcement() is None

    def test_title_length_enforced(self):
        with pytest.raises(ValidationError, match="Title must be"):
            AnnouncementUpdate(title="Hi", content="Tasks are paused until September.")

    def test_content_length_enforced(self):
        with pytest.raises(ValidationError, match="Content must be"):
            AnnouncementUpdate(title="Summer break", content="Short")
