"""SQLite document store client with CRUD, atomic batches and relative increments."""

import asyncio
import json
import logging
import re
import secrets
import string
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, StrEnum
from pathlib import Path
from typing import Any

import aiosqlite

from src.core.change_feed import ChangeEvent, ChangeKind, change_feed
from src.core.config import settings


logger = logging.getLogger(__name__)

RECORD_ID_LENGTH = 15
_RECORD_ID_ALPHABET = string.ascii_lowercase + string.digits
_IDENTIFIER_PATTERN = r"^[a-zA-Z_][a-zA-Z0-9_]*$"


class DatabaseError(RuntimeError):
    """Raised when the document store cannot complete an operation."""


class RecordNotFoundError(KeyError):
    """Raised when a record does not exist."""


class DuplicateRecordError(DatabaseError):
    """Raised when a write violates a uniqueness constraint."""


class PreconditionFailedError(DatabaseError):
    """Raised when a conditional write finds the record in an unexpected state."""

    def __init__(self, message: str, *, current: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.current = current or {}


class WriteMode(StrEnum):
    """Kinds of write operation accepted by atomic_batch."""

    CREATE = "create"
    MERGE = "merge"
    INCREMENT = "increment"
    DELETE = "delete"


@dataclass
class WriteOp:
    """A single write in an atomic batch.

    `expected` holds field values the record must currently have for the write
    to apply (compare-and-swap). For increments, `floor` is the lowest value
    the field may reach.
    """

    collection: str
    mode: WriteMode
    record_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    expected: dict[str, Any] = field(default_factory=dict)
    floor: int | None = None


def create_op(collection: str, data: dict[str, Any], *, record_id: str | None = None) -> WriteOp:
    """Build a create operation."""
    return WriteOp(collection=collection, mode=WriteMode.CREATE, record_id=record_id, data=data)


def merge_op(
    collection: str,
    record_id: str,
    data: dict[str, Any],
    *,
    expected: dict[str, Any] | None = None,
) -> WriteOp:
    """Build a merge (partial update) operation."""
    return WriteOp(
        collection=collection,
        mode=WriteMode.MERGE,
        record_id=record_id,
        data=data,
        expected=expected or {},
    )


def increment_op(
    collection: str,
    record_id: str,
    field_name: str,
    delta: int,
    *,
    floor: int | None = None,
) -> WriteOp:
    """Build a relative adjustment of a numeric field."""
    return WriteOp(
        collection=collection,
        mode=WriteMode.INCREMENT,
        record_id=record_id,
        data={field_name: delta},
        floor=floor,
    )


def delete_op(collection: str, record_id: str, *, expected: dict[str, Any] | None = None) -> WriteOp:
    """Build a delete operation."""
    return WriteOp(collection=collection, mode=WriteMode.DELETE, record_id=record_id, expected=expected or {})


# Collections register the columns that hold JSON-encoded lists/objects
_json_fields: dict[str, set[str]] = {}


def register_json_fields(collection: str, fields: list[str]) -> None:
    """Declare columns of a collection that are stored as JSON text."""
    _json_fields.setdefault(collection, set()).update(fields)


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(_IDENTIFIER_PATTERN, collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _validate_field_name(field_name: str) -> None:
    if not re.match(_IDENTIFIER_PATTERN, field_name):
        msg = f"Invalid field name: {field_name}"
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def new_record_id() -> str:
    """Generate a random 15-character record id."""
    return "".join(secrets.choice(_RECORD_ID_ALPHABET) for _ in range(RECORD_ID_LENGTH))


def now_timestamp() -> str:
    """Current UTC time in the store's ISO format."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _encode_value(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict | list | tuple | set):
        return json.dumps(list(value) if isinstance(value, tuple | set) else value)
    return value


def _decode_record(collection: str, record: dict[str, Any]) -> dict[str, Any]:
    """Decode JSON columns declared for the collection."""
    decoded = record.copy()
    for key in _json_fields.get(collection, ()):
        value = decoded.get(key)
        if isinstance(value, str):
            try:
                decoded[key] = json.loads(value)
            except json.JSONDecodeError:
                logger.warning("Undecodable JSON column", extra={"collection": collection, "field": key})
    return decoded


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        escaped = value.replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
        "?=": "ANY",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


_COMPARISON_PATTERN = re.compile(
    r"""(\w+)\s*(\?=|!=|>=|<=|=|>|<|~)\s*(?:"((?:[^"\\]|\\.)*)"|'((?:[^'\\]|\\.)*)')$""",
    re.DOTALL,
)


def _unescape_value(raw: str, *, quote: str) -> str:
    """Undo the escaping applied by sanitize_param."""
    if quote == "'":
        # A bare double quote is legal inside single quotes but not inside JSON
        raw = re.sub(r'\\.|"', lambda m: '\\"' if m.group() == '"' else m.group(), raw)
    try:
        return json.loads(f'"{raw}"')
    except json.JSONDecodeError as e:
        msg = f"Invalid escape sequence in filter value: {raw}"
        raise ValueError(msg) from e


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | float | None]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = _COMPARISON_PATTERN.match(comparison)
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field_name = match.group(1)
    op = match.group(2)
    if match.group(3) is not None:
        raw_value = _unescape_value(match.group(3), quote='"')
    else:
        raw_value = _unescape_value(match.group(4), quote="'")

    sql_op = _get_sql_operator(op)
    if sql_op == "ANY":
        # JSON list membership; the value is compared as text
        return f"EXISTS (SELECT 1 FROM json_each({field_name}) WHERE json_each.value = ?)", raw_value
    if sql_op == "LIKE":
        return f"{field_name} LIKE ? ESCAPE '\\'", _parse_value(raw_value, is_like=True)

    return f"{field_name} {sql_op} ?", _parse_value(raw_value)


def _split_top_level(text: str, separator: str) -> list[str]:
    """Split on a two-character separator outside quotes and parentheses."""
    parts = []
    current = ""
    paren_depth = 0
    quote = None
    index = 0

    while index < len(text):
        char = text[index]
        if quote:
            current += char
            if char == "\\" and index + 1 < len(text):
                current += text[index + 1]
                index += 1
            elif char == quote:
                quote = None
        elif char in "\"'":
            quote = char
            current += char
        elif paren_depth == 0 and text.startswith(separator, index):
            parts.append(current.strip())
            current = ""
            index += len(separator)
            continue
        else:
            if char == "(":
                paren_depth += 1
            elif char == ")":
                paren_depth -= 1
            current += char
        index += 1

    if current.strip():
        parts.append(current.strip())

    return parts


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | None]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]  # Remove parentheses
    or_conditions = []
    or_params = []

    for part in _split_top_level(inner, "||"):
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving quoted values and parenthesized groups."""
    return _split_top_level(filter_query, "&&")


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params = []

    for raw_part in parts:
        part = raw_part.strip()

        # Handle parenthesized OR groups
        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def parse_sort(sort: str) -> str:
    """Translate `field`, `-field` or `field ASC|DESC` into an ORDER BY clause."""
    default = "created ASC, id ASC"
    if not sort:
        return default

    candidate = sort.strip()
    if candidate.startswith("-"):
        candidate = f"{candidate[1:]} DESC"

    if re.match(r"^[A-Za-z_][A-Za-z0-9_]*(\s+(ASC|DESC))?$", candidate, re.IGNORECASE):
        return f"{candidate}, id ASC"

    logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
    return default


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_connection_locks: dict[tuple[int, int, str], asyncio.Lock] = {}
_db_lock = asyncio.Lock()


def _cache_key(db_path: str | None = None) -> tuple[int, int, str]:
    loop = asyncio.get_running_loop()
    return (threading.get_ident(), id(loop), str(get_db_path(db_path)))


async def open_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Open a new, uncached connection with the store's pragmas applied."""
    path = get_db_path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(str(path))
    await conn.execute("PRAGMA foreign_keys = ON")
    await conn.execute("PRAGMA journal_mode = WAL")
    await conn.execute("PRAGMA busy_timeout = 5000")
    return conn


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    # Create new connection with async lock to prevent races
    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        conn = await open_connection(db_path=db_path)
        _db_connections[cache_key] = conn
        _connection_locks[cache_key] = asyncio.Lock()

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": cache_key[2], "thread_id": cache_key[0], "loop_id": cache_key[1]},
        )
        return conn


@asynccontextmanager
async def _locked_connection(*, db_path: str | None = None) -> AsyncIterator[aiosqlite.Connection]:
    """Yield the cached connection while holding its lock.

    The lock keeps a batch's transaction from interleaving with other
    coroutines sharing the same connection.
    """
    conn = await get_connection(db_path=db_path)
    lock = _connection_locks.setdefault(_cache_key(db_path), asyncio.Lock())
    async with lock:
        yield conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)

    if cache_key not in _db_connections:
        return

    try:
        async with _db_lock:
            if cache_key in _db_connections:
                conn = _db_connections.pop(cache_key)
                _connection_locks.pop(cache_key, None)
                await conn.close()
                logger.info(
                    "Closed SQLite connection",
                    extra={"thread_id": cache_key[0], "loop_id": cache_key[1], "db_path": cache_key[2]},
                )
    except aiosqlite.Error as e:
        logger.warning(
            "Error closing SQLite connection",
            extra={"error": str(e), "thread_id": cache_key[0], "loop_id": cache_key[1]},
        )


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from src.core import schema

    await schema.init_db(db_path=db_path)


async def _fetch(conn: aiosqlite.Connection, collection: str, record_id: str) -> dict[str, Any] | None:
    query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, (record_id,))
    row = await cursor.fetchone()
    if row is None:
        return None
    columns = [description[0] for description in cursor.description]
    return _decode_record(collection, dict(zip(columns, row, strict=True)))


def _expected_clause(expected: dict[str, Any]) -> tuple[str, list[Any]]:
    clauses = []
    params = []
    for key, value in expected.items():
        _validate_field_name(key)
        if value is None:
            clauses.append(f"{key} IS NULL")
        else:
            clauses.append(f"{key} = ?")
            params.append(_encode_value(value))
    return "".join(f" AND {c}" for c in clauses), params


async def _raise_unmatched(conn: aiosqlite.Connection, op: WriteOp) -> None:
    """Explain why a conditional write matched no row."""
    current = await _fetch(conn, op.collection, op.record_id or "")
    if current is None:
        msg = f"Record not found in {op.collection}: {op.record_id}"
        raise RecordNotFoundError(msg)

    msg = f"Precondition failed for {op.collection}/{op.record_id} ({op.mode} expected {op.expected or op.floor})"
    raise PreconditionFailedError(msg, current=current)


async def _apply(conn: aiosqlite.Connection, op: WriteOp) -> tuple[dict[str, Any] | None, ChangeEvent]:
    """Apply one operation inside the caller's transaction."""
    _validate_collection_name(op.collection)
    timestamp = now_timestamp()

    if op.mode == WriteMode.CREATE:
        record_id = op.record_id or op.data.get("id") or new_record_id()
        data = {"created": timestamp, "updated": timestamp, **op.data, "id": record_id}
        for key in data:
            _validate_field_name(key)
        columns_str = ", ".join(data)
        placeholders_str = ", ".join("?" for _ in data)
        query = f"INSERT INTO {op.collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - validated
        await conn.execute(query, [_encode_value(v) for v in data.values()])
        return await _fetch(conn, op.collection, record_id), ChangeEvent(op.collection, record_id, ChangeKind.CREATED)

    if not op.record_id:
        msg = f"{op.mode} operation on {op.collection} requires a record id"
        raise ValueError(msg)

    expected_sql, expected_params = _expected_clause(op.expected)

    if op.mode == WriteMode.MERGE:
        if not op.data:
            msg = "Empty update payload"
            raise ValueError(msg)
        data = {**op.data, "updated": timestamp}
        for key in data:
            _validate_field_name(key)
        set_clause = ", ".join(f"{key} = ?" for key in data)
        query = f"UPDATE {op.collection} SET {set_clause} WHERE id = ?{expected_sql}"  # noqa: S608 - validated
        params = [_encode_value(v) for v in data.values()] + [op.record_id, *expected_params]
        kind = ChangeKind.UPDATED
    elif op.mode == WriteMode.INCREMENT:
        if len(op.data) != 1:
            msg = "Increment operations adjust exactly one field"
            raise ValueError(msg)
        ((field_name, delta),) = op.data.items()
        _validate_field_name(field_name)
        set_clause = f"{field_name} = {field_name} + ?, updated = ?"
        query = f"UPDATE {op.collection} SET {set_clause} WHERE id = ?{expected_sql}"  # noqa: S608
        params = [int(delta), timestamp, op.record_id, *expected_params]
        if op.floor is not None:
            query += f" AND {field_name} + ? >= ?"
            params.extend([int(delta), op.floor])
        kind = ChangeKind.UPDATED
    else:
        query = f"DELETE FROM {op.collection} WHERE id = ?{expected_sql}"  # noqa: S608 - validated
        params = [op.record_id, *expected_params]
        kind = ChangeKind.DELETED

    cursor = await conn.execute(query, params)
    if cursor.rowcount == 0:
        await _raise_unmatched(conn, op)

    record = None if kind == ChangeKind.DELETED else await _fetch(conn, op.collection, op.record_id)
    return record, ChangeEvent(op.collection, op.record_id, kind)


async def atomic_batch(ops: list[WriteOp]) -> list[dict[str, Any] | None]:
    """Apply every operation in a single transaction, all or nothing.

    Returns the resulting record for each operation (None for deletes).

    Raises:
        RecordNotFoundError: If a merge/increment/delete targets a missing record
        PreconditionFailedError: If an expected value or floor does not hold
        DuplicateRecordError: If a create violates a uniqueness constraint
        DatabaseError: For any other store failure
    """
    if not ops:
        return []

    events: list[ChangeEvent] = []
    results: list[dict[str, Any] | None] = []

    async with _locked_connection() as conn:
        try:
            await conn.execute("BEGIN IMMEDIATE")
            for op in ops:
                record, event = await _apply(conn, op)
                results.append(record)
                events.append(event)
            await conn.commit()
        except BaseException as e:
            await conn.rollback()
            logger.warning(
                "atomic_batch_rolled_back",
                extra={"operations": len(ops), "applied_before_failure": len(events), "error": str(e)},
            )
            if isinstance(e, aiosqlite.IntegrityError) and "UNIQUE" in str(e):
                raise DuplicateRecordError(f"Constraint violated: {e}") from e
            if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
                msg = f"Table does not exist ({e}). Call init_db() first."
                raise DatabaseError(msg) from e
            if isinstance(e, aiosqlite.Error):
                raise DatabaseError(f"Batch write failed: {e}") from e
            raise

    change_feed.publish(events)
    logger.info(
        "Committed batch",
        extra={"operations": len(ops), "collections": sorted({op.collection for op in ops})},
    )
    return results


async def create_record(*, collection: str, data: dict[str, Any], record_id: str | None = None) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    (record,) = await atomic_batch([create_op(collection, data, record_id=record_id)])
    logger.info("Created record", extra={"collection": collection, "record_id": record["id"] if record else None})
    return record or {}


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        async with _locked_connection() as conn:
            record = await _fetch(conn, collection, record_id)
    except aiosqlite.Error as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to get record from {collection}: {e}"
        raise DatabaseError(msg) from e

    if record is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return record


async def update_record(
    *,
    collection: str,
    record_id: str,
    data: dict[str, Any],
    expected: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Merge fields into a record and return the updated record."""
    (record,) = await atomic_batch([merge_op(collection, record_id, data, expected=expected)])
    logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
    return record or {}


async def increment_field(
    *,
    collection: str,
    record_id: str,
    field_name: str,
    delta: int,
    floor: int | None = None,
) -> dict[str, Any]:
    """Relatively adjust a numeric field without a read-modify-write cycle."""
    (record,) = await atomic_batch([increment_op(collection, record_id, field_name, delta, floor=floor)])
    return record or {}


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    await atomic_batch([delete_op(collection, record_id)])
    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    _validate_collection_name(collection)

    where_clause = ""
    params: list[Any] = []
    if filter_query:
        where_clause, params = parse_filter(filter_query)
        where_clause = f"WHERE {where_clause}"

    offset = (page - 1) * per_page
    query = f"SELECT * FROM {collection} {where_clause} ORDER BY {parse_sort(sort)} LIMIT ? OFFSET ?"  # noqa: S608
    params.extend([per_page, offset])

    try:
        async with _locked_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            columns = [description[0] for description in cursor.description]
    except aiosqlite.Error as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise DatabaseError(msg) from e

    records = [_decode_record(collection, dict(zip(columns, row, strict=True))) for row in rows]
    logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def get_first_record(*, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(collection=collection, filter_query=filter_query, sort=sort, per_page=1)
    return records[0] if records else None
