"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import logfire
import pytest

from src.core import db_client
from src.core.config import settings
from tests.helpers import make_child, make_parent


@pytest.fixture(scope="session", autouse=True)
def _configure_logfire() -> None:
    """Keep spans local during tests."""
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point the store at a fresh SQLite file for this test."""
    path = str(tmp_path / "growthally-test.db")
    monkeypatch.setattr(settings, "sqlite_db_path", path)
    return path


@pytest.fixture
async def db(db_path: str) -> AsyncGenerator[str, None]:
    """Initialize the schema in the test database and close the connection afterwards."""
    await db_client.init_db()
    yield db_path
    await db_client.close_connection()


@pytest.fixture
async def parent(db: str) -> dict[str, Any]:
    """A registered parent profile."""
    return await make_parent()


@pytest.fixture
async def child(parent: dict[str, Any]) -> dict[str, Any]:
    """A child provisioned by `parent`; returns the child profile."""
    result = await make_child(parent_id=parent["id"])
    return result["profile"]
