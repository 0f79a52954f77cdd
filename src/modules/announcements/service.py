"""Announcement service."""

import logging
from typing import Any

from src.core import db_client, live_query
from src.core.config import constants
from src.core.db_client import RecordNotFoundError
from src.core.logging import span
from src.domain.create_models import AnnouncementUpdate
from src.services.session_service import SessionContext


logger = logging.getLogger(__name__)

ANNOUNCEMENTS = "announcements"


async def set_announcement(*, session: SessionContext, data: AnnouncementUpdate) -> dict[str, Any]:
    """Create or replace the announcement.

    Raises:
        PermissionError: If the session is not an administrator
    """
    with span("announcement_service.set_announcement"):
        # Guard: Administrators only
        if not session.is_administrator:
            msg = f"User {session.user_id} is not an administrator"
            raise PermissionError(msg)

        fields = {
            "title": data.title,
            "content": data.content,
            "is_active": data.is_active,
            "updated_by": session.user_id,
        }
        try:
            record = await db_client.update_record(
                collection=ANNOUNCEMENTS,
                record_id=constants.ANNOUNCEMENT_RECORD_ID,
                data=fields,
            )
        except RecordNotFoundError:
            record = await db_client.create_record(
                collection=ANNOUNCEMENTS,
                data=fields,
                record_id=constants.ANNOUNCEMENT_RECORD_ID,
            )

        logger.info("Announcement updated by %s (active=%s)", session.user_id, data.is_active)
        return record


async def get_active_announcement() -> dict[str, Any] | None:
    """Return the announcement while it is active, otherwise None."""
    try:
        record = await db_client.get_record(collection=ANNOUNCEMENTS, record_id=constants.ANNOUNCEMENT_RECORD_ID)
    except RecordNotFoundError:
        return None
    return record if record["is_active"] else None


def watch_announcement() -> live_query.Subscription:
    """Live feed of the announcement record (empty list until one is set)."""
    return live_query.subscribe(
        collection=ANNOUNCEMENTS,
        filter_query=f'id = "{constants.ANNOUNCEMENT_RECORD_ID}"',
    )
