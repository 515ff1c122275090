"""SQLite schema management (code-first approach)."""

from typing import Any


# Central list of all collections in the schema
COLLECTIONS = [
    "users",
    "tasks",
]

# Fields that can never change after a record is created
IMMUTABLE_FIELDS = frozenset({"_id", "dateCreated"})

_SCHEMAS: dict[str, dict[str, Any]] = {
    "users": {
        "fields": {
            "_id": "TEXT PRIMARY KEY",
            "name": "TEXT NOT NULL",
            # Stored trimmed and lower-cased, so UNIQUE is effectively case-insensitive
            "email": "TEXT NOT NULL UNIQUE",
            "pendingTasks": "TEXT NOT NULL DEFAULT '[]'",
            "dateCreated": "TEXT NOT NULL",
        },
        "json_fields": frozenset({"pendingTasks"}),
        "bool_fields": frozenset(),
        "indexes": [],
    },
    "tasks": {
        "fields": {
            "_id": "TEXT PRIMARY KEY",
            "name": "TEXT NOT NULL",
            "description": "TEXT NOT NULL DEFAULT ''",
            "deadline": "TEXT NOT NULL",
            "completed": "INTEGER NOT NULL DEFAULT 0",
            "assignedUser": "TEXT NOT NULL DEFAULT ''",
            "assignedUserName": "TEXT NOT NULL DEFAULT 'unassigned'",
            "dateCreated": "TEXT NOT NULL",
        },
        "json_fields": frozenset(),
        "bool_fields": frozenset({"completed"}),
        "indexes": ["CREATE INDEX IF NOT EXISTS idx_tasks_assigned_user ON tasks (assignedUser)"],
    },
}


def get_collection_schema(collection: str) -> dict[str, Any]:
    """Get the schema definition for a collection.

    Raises:
        ValueError: If the collection is not part of the schema
    """
    schema = _SCHEMAS.get(collection)
    if schema is None:
        msg = f"Unknown collection: {collection}"
        raise ValueError(msg)
    return schema


def schema_statements() -> list[str]:
    """DDL statements that create every collection table and index."""
    statements = []
    for collection in COLLECTIONS:
        fields = get_collection_schema(collection)["fields"]
        columns = ",\n    ".join(f"{name} {definition}" for name, definition in fields.items())
        statements.append(f"CREATE TABLE IF NOT EXISTS {collection} (\n    {columns}\n)")
        statements.extend(get_collection_schema(collection)["indexes"])
    return statements
