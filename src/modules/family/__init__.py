"""Family module for parent and child accounts."""

TIMESTAMP_DEFAULT = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"


class FamilyModule:
    """Family module for account profiles and the per-parent child roster.

    Provides:
    - Parent registration
    - Child provisioning through an isolated identity context
    - Roster listing, live roster feeds and child removal
    - Profile edits kept in step with the roster mirror
    """

    @property
    def name(self) -> str:
        """Module name (unique identifier)."""
        return "family"

    @property
    def description(self) -> str:
        """Module description (human-readable)."""
        return "Parent and child accounts with a denormalized child roster"

    def get_table_schemas(self) -> dict[str, str]:
        """Return table schemas for this module."""
        return {
            "profiles": f"""CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        created TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        updated TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        role TEXT NOT NULL CHECK (role IN ('parent', 'child')),
        email TEXT NOT NULL,
        display_name TEXT NOT NULL DEFAULT '',
        name TEXT NOT NULL DEFAULT '',
        gender TEXT NOT NULL DEFAULT 'unspecified'
            CHECK (gender IN ('male', 'female', 'unspecified')),
        age INTEGER,
        phone TEXT,
        parent_id TEXT,
        points INTEGER NOT NULL DEFAULT 0 CHECK (points >= 0),
        hobbies TEXT NOT NULL DEFAULT '[]'
    )""",
            "children": f"""CREATE TABLE IF NOT EXISTS children (
        id TEXT PRIMARY KEY,
        created TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        updated TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        parent_id TEXT NOT NULL,
        profile_id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        points INTEGER NOT NULL DEFAULT 0 CHECK (points >= 0),
        initial_secret TEXT NOT NULL,
        gender TEXT NOT NULL DEFAULT 'unspecified',
        age INTEGER,
        hobbies TEXT NOT NULL DEFAULT '[]'
    )""",
        }

    def get_indexes(self) -> list[str]:
        """Return indexes for this module's tables."""
        return [
            "CREATE INDEX IF NOT EXISTS idx_profiles_parent_id ON profiles (parent_id)",
            "CREATE INDEX IF NOT EXISTS idx_profiles_email ON profiles (email)",
            "CREATE INDEX IF NOT EXISTS idx_children_parent_id ON children (parent_id)",
        ]

    def get_json_fields(self) -> dict[str, list[str]]:
        """Return JSON list columns."""
        return {"profiles": ["hobbies"], "children": ["hobbies"]}
