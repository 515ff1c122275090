"""Pytest configuration and fixtures for unit tests."""

import pytest

from tests.unit.mocks import InMemoryDBClient


_PATCHED_FUNCTIONS = (
    "create_record",
    "get_record",
    "replace_record",
    "update_records",
    "add_to_set",
    "pull_from_set",
    "delete_record",
    "list_records",
    "count_records",
)


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches llamaio.core.db_client functions to use InMemoryDBClient."""
    for name in _PATCHED_FUNCTIONS:
        monkeypatch.setattr(f"llamaio.core.db_client.{name}", getattr(in_memory_db, name))

    return in_memory_db


@pytest.fixture
async def sample_user(patched_db):
    """A stored user with no pending tasks."""
    return await patched_db.create_record(
        collection="users",
        data={"name": "Ada Lovelace", "email": "ada@example.com", "pendingTasks": []},
    )


@pytest.fixture
async def other_user(patched_db):
    """A second stored user with no pending tasks."""
    return await patched_db.create_record(
        collection="users",
        data={"name": "Grace Hopper", "email": "grace@example.com", "pendingTasks": []},
    )


@pytest.fixture
def sample_task_payload():
    """Returns a minimal valid task payload."""
    return {
        "name": "Write report",
        "description": "Quarterly numbers",
        "deadline": "2030-01-15T12:00:00Z",
    }
