"""Pytest configuration and fixtures for integration tests."""

import pytest

from llamaio.core import db_client
from llamaio.core.config import settings


@pytest.fixture
async def sqlite_db(tmp_path, monkeypatch):
    """Point the database client at a fresh SQLite file with the schema created."""
    db_path = tmp_path / "llamaio-test.db"
    monkeypatch.setattr(settings, "sqlite_db_path", str(db_path))

    await db_client.init_db()
    yield db_path
    await db_client.close_connection()
