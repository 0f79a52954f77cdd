"""Tasks module for point-valued chores."""

TIMESTAMP_DEFAULT = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"


class TasksModule:
    """Tasks module for assigning, submitting and verifying chores.

    Provides:
    - Task CRUD for parents
    - Child submission of completion notes and evidence
    - Verification that awards points to every assignee atomically
    - Task audit log
    """

    @property
    def name(self) -> str:
        """Module name (unique identifier)."""
        return "tasks"

    @property
    def description(self) -> str:
        """Module description (human-readable)."""
        return "Point-valued tasks with a pending, completed, verified lifecycle"

    def get_table_schemas(self) -> dict[str, str]:
        """Return table schemas for this module."""
        return {
            "tasks": f"""CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        created TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        updated TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        parent_id TEXT NOT NULL,
        description TEXT NOT NULL,
        points INTEGER NOT NULL CHECK (points > 0),
        assignee_ids TEXT NOT NULL DEFAULT '[]',
        assignee_names TEXT NOT NULL DEFAULT '[]',
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'completed', 'verified')),
        completion_notes TEXT,
        evidence_ref TEXT,
        feedback TEXT,
        completed_at TEXT,
        completed_by TEXT,
        verified_at TEXT,
        verified_by TEXT,
        returned_at TEXT
    )""",
            "task_logs": f"""CREATE TABLE IF NOT EXISTS task_logs (
        id TEXT PRIMARY KEY,
        created TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        updated TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        task_id TEXT NOT NULL,
        parent_id TEXT NOT NULL,
        child_id TEXT,
        actor_id TEXT NOT NULL,
        action TEXT NOT NULL CHECK (action IN ('submitted', 'points_awarded', 'rejected')),
        points INTEGER NOT NULL DEFAULT 0,
        notes TEXT,
        timestamp TEXT NOT NULL
    )""",
        }

    def get_indexes(self) -> list[str]:
        """Return indexes for this module's tables."""
        return [
            "CREATE INDEX IF NOT EXISTS idx_tasks_parent_id ON tasks (parent_id)",
            "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks (status)",
            "CREATE INDEX IF NOT EXISTS idx_task_logs_task_id ON task_logs (task_id)",
            "CREATE INDEX IF NOT EXISTS idx_task_logs_child_id ON task_logs (child_id)",
        ]

    def get_json_fields(self) -> dict[str, list[str]]:
        """Return JSON list columns."""
        return {"tasks": ["assignee_ids", "assignee_names"]}
