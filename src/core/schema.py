"""SQLite schema management (code-first approach)."""

import logging

from src.core import db_client, module_registry


logger = logging.getLogger(__name__)

TIMESTAMP_DEFAULT = "(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))"

# Tables owned by core services rather than a feature module
CORE_TABLE_SCHEMAS = {
    "auth_identities": f"""CREATE TABLE IF NOT EXISTS auth_identities (
        id TEXT PRIMARY KEY,
        created TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        updated TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
        secret_hash TEXT NOT NULL
    )""",
    "sessions": f"""CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        created TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        updated TEXT NOT NULL DEFAULT {TIMESTAMP_DEFAULT},
        identity_id TEXT NOT NULL,
        role TEXT NOT NULL,
        email TEXT NOT NULL,
        expires_at TEXT NOT NULL
    )""",
}


def collect_schemas() -> tuple[dict[str, str], list[str]]:
    """Return every CREATE TABLE and CREATE INDEX statement, core first."""
    module_registry.register_builtin_modules()
    tables = {**CORE_TABLE_SCHEMAS}
    for table_name, statement in module_registry.get_all_table_schemas().items():
        if table_name in tables:
            msg = f"Module table '{table_name}' collides with a core table"
            raise ValueError(msg)
        tables[table_name] = statement
    indexes = ["CREATE INDEX IF NOT EXISTS idx_sessions_identity_id ON sessions (identity_id)"]
    return tables, indexes + module_registry.get_all_indexes()


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes and register JSON columns. Idempotent."""
    tables, indexes = collect_schemas()

    for table_name, fields in module_registry.get_all_json_fields().items():
        db_client.register_json_fields(table_name, fields)

    conn = await db_client.get_connection(db_path=db_path)
    for statement in tables.values():
        await conn.execute(statement)
    for statement in indexes:
        await conn.execute(statement)
    await conn.commit()

    logger.info("Schema initialized", extra={"tables": sorted(tables), "indexes": len(indexes)})
