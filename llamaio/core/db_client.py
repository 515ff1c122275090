"""SQLite database client wrapper with CRUD and set operations."""

import asyncio
import json
import logging
import re
import secrets
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from llamaio.core import filters
from llamaio.core.config import constants, settings
from llamaio.core.deadline_parser import current_timestamp, format_timestamp
from llamaio.core.schema import IMMUTABLE_FIELDS, get_collection_schema, schema_statements


logger = logging.getLogger(__name__)

_RECORD_ID_PATTERN = re.compile(rf"^[0-9a-fA-F]{{{constants.RECORD_ID_LENGTH}}}$")
_UNIQUE_VIOLATION_PATTERN = re.compile(r"UNIQUE constraint failed: \w+\.(\w+)")
# Longer $in lists are left to the Python filter to stay under SQLite's bound-parameter limit
_MAX_PUSHDOWN_VALUES = 500


class DatabaseError(Exception):
    """Raised when a storage operation fails."""


class RecordNotFoundError(DatabaseError):
    """Raised when a record does not exist."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"Record not found in {collection}: {record_id}")
        self.collection = collection
        self.record_id = record_id


class MalformedIdentifierError(DatabaseError):
    """Raised when a record id is not in the expected identifier format."""

    def __init__(self, collection: str, record_id: object) -> None:
        super().__init__(f"Malformed record id for {collection}: {record_id!r}")
        self.collection = collection
        self.record_id = record_id


class DuplicateRecordError(DatabaseError):
    """Raised when a write violates a unique field."""

    def __init__(self, collection: str, field: str) -> None:
        super().__init__(f"Duplicate value for unique field {collection}.{field}")
        self.collection = collection
        self.field = field


class StorageUnavailableError(DatabaseError):
    """Raised when the database cannot be opened or reached."""


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name is safe and part of the schema."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)
    get_collection_schema(collection)


def _validate_field_names(collection: str, fields: list[str]) -> None:
    """Validate that every field is a column of the collection."""
    known = get_collection_schema(collection)["fields"]
    unknown = [field for field in fields if field not in known]
    if unknown:
        msg = f"Unknown fields for {collection}: {', '.join(unknown)}"
        raise ValueError(msg)


def generate_record_id() -> str:
    """Generate a new 24 hex character record id."""
    return secrets.token_hex(constants.RECORD_ID_LENGTH // 2)


def is_valid_record_id(value: object) -> bool:
    """Return True if value is a well-formed record id."""
    return isinstance(value, str) and _RECORD_ID_PATTERN.match(value) is not None


def require_record_id(*, collection: str, record_id: object) -> str:
    """Return the record id, raising MalformedIdentifierError if it is malformed."""
    if not is_valid_record_id(record_id):
        raise MalformedIdentifierError(collection, record_id)
    return str(record_id)


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, dict | list):
        return json.dumps(value)
    return value


def _decode_record(collection: str, record: dict[str, Any]) -> dict[str, Any]:
    """Convert stored column values back to their document types."""
    schema = get_collection_schema(collection)
    decoded = record.copy()
    for key, value in decoded.items():
        if key in schema["json_fields"]:
            decoded[key] = json.loads(value) if value else []
        elif key in schema["bool_fields"]:
            decoded[key] = bool(value)
    return decoded


def _wrap_error(e: Exception, *, operation: str, collection: str) -> DatabaseError:
    """Translate a driver exception into the DatabaseError hierarchy."""
    if isinstance(e, aiosqlite.IntegrityError):
        match = _UNIQUE_VIOLATION_PATTERN.search(str(e))
        if match:
            return DuplicateRecordError(collection, match.group(1))
    if isinstance(e, aiosqlite.OperationalError) and "unable to open" in str(e):
        return StorageUnavailableError(f"Database unavailable: {e}")
    return DatabaseError(f"Failed to {operation} {collection}: {e}")


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(str(path))
            await conn.execute("PRAGMA journal_mode = WAL")
        except (OSError, aiosqlite.Error) as e:
            logger.error("sqlite_connect_failed", extra={"db_path": str(path), "error": str(e)})
            msg = f"Database unavailable at {path}: {e}"
            raise StorageUnavailableError(msg) from e

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_running_loop())
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    async with _db_lock:
        conn = _db_connections.pop(cache_key, None)
        if conn is None:
            return
        try:
            await conn.close()
        except aiosqlite.Error as e:
            logger.warning(
                "Error closing SQLite connection",
                extra={"error": str(e), "thread_id": thread_id, "loop_id": loop_id},
            )
            return

    logger.info("Closed SQLite connection", extra={"db_path": str(path), "thread_id": thread_id})


async def init_db(*, db_path: str | None = None) -> None:
    """Create every collection table and index that does not exist yet."""
    conn = await get_connection(db_path=db_path)
    try:
        for statement in schema_statements():
            await conn.execute(statement)
        await conn.commit()
    except aiosqlite.Error as e:
        raise _wrap_error(e, operation="initialize", collection="schema") from e
    logger.info("Database schema initialized", extra={"db_path": str(get_db_path(db_path))})


async def _fetch_one(conn: aiosqlite.Connection, collection: str, record_id: str) -> dict[str, Any] | None:
    query = f"SELECT * FROM {collection} WHERE _id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, (record_id,))
    row = await cursor.fetchone()
    if row is None:
        return None
    columns = [description[0] for description in cursor.description]
    return _decode_record(collection, dict(zip(columns, row, strict=True)))


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its generated `_id` and `dateCreated`."""
    _validate_collection_name(collection)
    record = {**data, "_id": generate_record_id(), "dateCreated": current_timestamp()}
    columns = list(record.keys())
    _validate_field_names(collection, columns)

    try:
        conn = await get_connection()

        columns_str = ", ".join(columns)
        placeholders_str = ", ".join("?" for _ in columns)
        values = [_encode_value(record[key]) for key in columns]

        query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - collection is validated
        await conn.execute(query, values)
        await conn.commit()

        created = await _fetch_one(conn, collection, record["_id"])
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error(e, operation="create record in", collection=collection) from e

    logger.info("Created record", extra={"collection": collection, "record_id": record["_id"]})
    return created or record


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by id.

    Raises:
        MalformedIdentifierError: If record_id is not a valid id
        RecordNotFoundError: If no record has this id
    """
    _validate_collection_name(collection)
    require_record_id(collection=collection, record_id=record_id)

    try:
        conn = await get_connection()
        record = await _fetch_one(conn, collection, record_id)
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, operation="get record from", collection=collection) from e

    if record is None:
        raise RecordNotFoundError(collection, record_id)

    logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return record


async def _update_by_id(*, collection: str, record_id: str, data: dict[str, Any], operation: str) -> dict[str, Any]:
    _validate_collection_name(collection)
    require_record_id(collection=collection, record_id=record_id)
    columns = [key for key in data if key not in IMMUTABLE_FIELDS]
    if not columns:
        msg = "Empty update payload"
        raise ValueError(msg)
    _validate_field_names(collection, columns)

    try:
        conn = await get_connection()

        set_clause = ", ".join(f"{key} = ?" for key in columns)
        values = [_encode_value(data[key]) for key in columns]
        values.append(record_id)

        query = f"UPDATE {collection} SET {set_clause} WHERE _id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, values)
        await conn.commit()

        if cursor.rowcount == 0:
            raise RecordNotFoundError(collection, record_id)

        updated = await _fetch_one(conn, collection, record_id)
    except DatabaseError:
        raise
    except Exception as e:
        logger.error(f"{operation}_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, operation=f"{operation.replace('_', ' ')} in", collection=collection) from e

    if updated is None:
        raise RecordNotFoundError(collection, record_id)
    return updated


async def replace_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Overwrite every mutable field of a record and return the new version.

    `_id` and `dateCreated` are preserved; every other column must be present in data.

    Raises:
        RecordNotFoundError: If no record has this id
    """
    schema = get_collection_schema(collection)
    missing = [field for field in schema["fields"] if field not in IMMUTABLE_FIELDS and field not in data]
    if missing:
        msg = f"Replacement for {collection} is missing fields: {', '.join(missing)}"
        raise ValueError(msg)

    record = await _update_by_id(collection=collection, record_id=record_id, data=data, operation="replace_record")
    logger.info("Replaced record", extra={"collection": collection, "record_id": record_id})
    return record


async def update_records(*, collection: str, record_ids: list[str], data: dict[str, Any]) -> int:
    """Set the given fields on every listed record that exists.

    Returns:
        Number of records updated (missing ids are skipped silently)
    """
    _validate_collection_name(collection)
    if not record_ids:
        return 0
    for record_id in record_ids:
        require_record_id(collection=collection, record_id=record_id)
    columns = [key for key in data if key not in IMMUTABLE_FIELDS]
    if not columns:
        msg = "Empty update payload"
        raise ValueError(msg)
    _validate_field_names(collection, columns)

    try:
        conn = await get_connection()

        set_clause = ", ".join(f"{key} = ?" for key in columns)
        id_placeholders = ", ".join("?" for _ in record_ids)
        values = [_encode_value(data[key]) for key in columns] + list(record_ids)

        query = f"UPDATE {collection} SET {set_clause} WHERE _id IN ({id_placeholders})"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, values)
        await conn.commit()
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("update_records_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error(e, operation="update records in", collection=collection) from e

    logger.info("Updated records", extra={"collection": collection, "count": cursor.rowcount})
    return cursor.rowcount


def _require_set_field(collection: str, field: str) -> None:
    if field not in get_collection_schema(collection)["json_fields"]:
        msg = f"{collection}.{field} is not an array field"
        raise ValueError(msg)


async def add_to_set(*, collection: str, record_id: str, field: str, value: str) -> None:
    """Append value to an array field unless it is already present.

    A single UPDATE statement, so concurrent or repeated calls never introduce
    duplicates. A missing record is a no-op.
    """
    _validate_collection_name(collection)
    require_record_id(collection=collection, record_id=record_id)
    _require_set_field(collection, field)

    try:
        conn = await get_connection()
        query = (
            f"UPDATE {collection} SET {field} = json_insert(COALESCE({field}, '[]'), '$[#]', ?) "  # noqa: S608 - collection and field are validated
            f"WHERE _id = ? AND NOT EXISTS (SELECT 1 FROM json_each({collection}.{field}) WHERE value = ?)"
        )
        await conn.execute(query, (value, record_id, value))
        await conn.commit()
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("add_to_set_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, operation="add to set in", collection=collection) from e

    logger.info("Added to set", extra={"collection": collection, "record_id": record_id, "field": field})


async def pull_from_set(*, collection: str, record_id: str, field: str, value: str) -> None:
    """Remove every occurrence of value from an array field. A missing record is a no-op."""
    _validate_collection_name(collection)
    require_record_id(collection=collection, record_id=record_id)
    _require_set_field(collection, field)

    try:
        conn = await get_connection()
        query = (
            f"UPDATE {collection} SET {field} = "  # noqa: S608 - collection and field are validated
            f"(SELECT json_group_array(value) FROM json_each({collection}.{field}) WHERE value != ?) "
            f"WHERE _id = ?"
        )
        await conn.execute(query, (value, record_id))
        await conn.commit()
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("pull_from_set_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, operation="pull from set in", collection=collection) from e

    logger.info("Pulled from set", extra={"collection": collection, "record_id": record_id, "field": field})


async def delete_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Delete a record by id and return the deleted record.

    Raises:
        RecordNotFoundError: If no record has this id
    """
    _validate_collection_name(collection)
    require_record_id(collection=collection, record_id=record_id)

    try:
        conn = await get_connection()
        record = await _fetch_one(conn, collection, record_id)
        if record is None:
            raise RecordNotFoundError(collection, record_id)

        query = f"DELETE FROM {collection} WHERE _id = ?"  # noqa: S608 - collection is validated
        await conn.execute(query, (record_id,))
        await conn.commit()
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, operation="delete record from", collection=collection) from e

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
    return record


def _column_condition(column: str, value: Any, *, is_bool: bool) -> tuple[str, list[Any]] | None:
    """SQL condition equivalent to an equality test on one column, if there is one."""
    if is_bool:
        return (f"{column} = ?", [int(value)]) if isinstance(value, bool) else None
    if isinstance(value, str):
        return f"{column} = ?", [value]
    return None


def _where_clause(collection: str, where: dict[str, Any] | None) -> tuple[str, list[Any]]:
    """Translate the indexable parts of a validated predicate into a SQL WHERE clause.

    Only top-level equality, ``$eq`` and ``$in`` tests on scalar columns are pushed
    down. The result narrows the rows read; callers still evaluate the full
    predicate on what comes back.
    """
    if not where:
        return "", []

    schema = get_collection_schema(collection)
    conditions: list[str] = []
    params: list[Any] = []
    for field, value in where.items():
        if field not in schema["fields"] or field in schema["json_fields"]:
            continue
        is_bool = field in schema["bool_fields"]
        expression = value if isinstance(value, dict) and value else {"$eq": value}
        if not all(str(key).startswith("$") for key in expression):
            continue
        for operator, operand in expression.items():
            condition = None
            if operator == "$eq":
                condition = _column_condition(field, operand, is_bool=is_bool)
            elif operator == "$in" and not is_bool and len(operand) <= _MAX_PUSHDOWN_VALUES:
                if all(isinstance(candidate, str) for candidate in operand):
                    placeholders = ", ".join("?" for _ in operand)
                    condition = (f"{field} IN ({placeholders})", list(operand)) if operand else ("0", [])
            if condition is not None:
                conditions.append(condition[0])
                params.extend(condition[1])

    if not conditions:
        return "", []
    return " WHERE " + " AND ".join(conditions), params


async def _fetch_matching(collection: str, where: dict[str, Any] | None) -> list[dict[str, Any]]:
    try:
        conn = await get_connection()
        clause, params = _where_clause(collection, where)
        query = f"SELECT * FROM {collection}{clause} ORDER BY rowid"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()
        columns = [description[0] for description in cursor.description]
    except DatabaseError:
        raise
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error(e, operation="list records from", collection=collection) from e

    records = [_decode_record(collection, dict(zip(columns, row, strict=True))) for row in rows]
    return [record for record in records if filters.matches(record, where)]


async def list_records(
    *,
    collection: str,
    where: dict[str, Any] | None = None,
    sort: filters.SortSpec | None = None,
    projection: dict[str, bool] | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """List records matching a validated filter, in insertion order unless sorted.

    Args:
        collection: Collection name
        where: Predicate already checked by filters.validate_predicate
        sort: Sort specification from filters.validate_sort
        projection: Projection from filters.validate_projection
        skip: Number of leading matches to omit
        limit: Maximum number of records to return (None for all)
    """
    _validate_collection_name(collection)
    records = filters.sort_records(await _fetch_matching(collection, where), sort)

    end = None if limit is None else skip + limit
    page = [filters.project_record(record, projection) for record in records[skip:end]]

    logger.info("Listed records", extra={"collection": collection, "count": len(page)})
    return page


async def count_records(*, collection: str, where: dict[str, Any] | None = None) -> int:
    """Count records matching a validated filter."""
    _validate_collection_name(collection)
    count = len(await _fetch_matching(collection, where))
    logger.info("Counted records", extra={"collection": collection, "count": count})
    return count
