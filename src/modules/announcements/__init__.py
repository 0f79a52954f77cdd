"""Announcements module for the site-wide notice."""

TIMESTAMP_DEFAULT = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"


class AnnouncementsModule:
    """Announcements module holding the single administrator-managed announcement."""

    @property
    def name(self) -> str:
        """Module name (unique identifier)."""
        return "announcements"

    @property
    def description(self) -> str:
        """Module description (human-readable)."""
        return "Site-wide announcement managed by administrators"

    def get_table_schemas(self) -> dict[str, str]:
        """Return table schemas for this module."""
        return {
            "announcements": f"""CREATE TABLE IF NOT EXISTS announcements (
        id TEXT PRIMARY KEY,
        created TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        updated TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 0,
        updated_by TEXT NOT NULL
    )""",
        }

    def get_indexes(self) -> list[str]:
        """Return indexes for this module's tables."""
        return []

    def get_json_fields(self) -> dict[str, list[str]]:
        """Return JSON list columns."""
        return {}
