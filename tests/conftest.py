# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from taskstore.core.config import Settings
from taskstore.main import create_app
from taskstore.store import TaskStore


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture()
def due() -> datetime:
    return datetime(2024, 3, 15, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a per-test database, L1 cache only."""
    return Settings(
        database_url=sqlite_url(tmp_path / "tasks.db"),
        cache_enabled=True,
        redis_dsn=None,
    )


@pytest.fixture()
async def store(tmp_path: Path):
    s = TaskStore(sqlite_url(tmp_path / "store.db"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture()
def client(settings: Settings):
    # Entering the client runs the lifespan, which builds the store.
    with TestClient(create_app(settings)) as c:
        yield c
