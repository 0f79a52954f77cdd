"""Rewards module for the reward catalog and redemption history."""

TIMESTAMP_DEFAULT = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"


class RewardsModule:
    """Rewards module for parent-defined rewards that children buy with points.

    Provides:
    - Reward catalog CRUD for parents
    - Atomic, idempotent redemption for children
    - Append-only redemption history
    """

    @property
    def name(self) -> str:
        """Module name (unique identifier)."""
        return "rewards"

    @property
    def description(self) -> str:
        """Module description (human-readable)."""
        return "Reward catalog and point redemption history"

    def get_table_schemas(self) -> dict[str, str]:
        """Return table schemas for this module."""
        return {
            "rewards": f"""CREATE TABLE IF NOT EXISTS rewards (
        id TEXT PRIMARY KEY,
        created TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        updated TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        parent_id TEXT NOT NULL,
        description TEXT NOT NULL,
        points_cost INTEGER NOT NULL CHECK (points_cost > 0)
    )""",
            "redemptions": f"""CREATE TABLE IF NOT EXISTS redemptions (
        id TEXT PRIMARY KEY,
        created TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        updated TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        reward_id TEXT NOT NULL,
        description TEXT NOT NULL,
        points_cost INTEGER NOT NULL CHECK (points_cost > 0),
        child_id TEXT NOT NULL,
        parent_id TEXT NOT NULL,
        claimed_at TEXT NOT NULL,
        idempotency_key TEXT
    )""",
        }

    def get_indexes(self) -> list[str]:
        """Return indexes for this module's tables."""
        return [
            "CREATE INDEX IF NOT EXISTS idx_rewards_parent_id ON rewards (parent_id)",
            "CREATE INDEX IF NOT EXISTS idx_redemptions_child_id ON redemptions (child_id)",
            "CREATE INDEX IF NOT EXISTS idx_redemptions_parent_id ON redemptions (parent_id)",
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_redemptions_idempotency "
            "ON redemptions (child_id, idempotency_key) WHERE idempotency_key IS NOT NULL",
        ]

    def get_json_fields(self) -> dict[str, list[str]]:
        """Return JSON list columns."""
        return {}
