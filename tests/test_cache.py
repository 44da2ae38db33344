# tests/test_cache.py

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from taskstore.cache.layer import CacheLayer
from taskstore.core.config import Settings
from taskstore.core.errors import TaskNotFoundError
from taskstore.services.task_service import TaskService
from taskstore.store import TaskStore


@pytest.fixture()
def cache() -> CacheLayer:
    return CacheLayer(Settings(redis_dsn=None))


async def test_get_task_served_from_l1(store: TaskStore, cache: CacheLayer, due: datetime) -> None:
    service = TaskService(store, cache)
    task_id = await service.create_task("cached", ["a", "b"], due)

    first = await service.get_task(task_id)
    second = await service.get_task(task_id)

    assert first == second
    assert second.due == due
    assert second.tags == ["a", "b"]
    assert cache.stats["misses"] == 1
    assert cache.stats["l1_hits"] == 1


async def test_not_found_is_not_cached(store: TaskStore, cache: CacheLayer) -> None:
    service = TaskService(store, cache)

    with pytest.raises(TaskNotFoundError):
        await service.get_task(7)
    assert len(cache.l1) == 0


async def test_delete_invalidates(store: TaskStore, cache: CacheLayer, due: datetime) -> None:
    service = TaskService(store, cache)
    task_id = await service.create_task("gone soon", [], due)
    await service.get_task(task_id)
    assert len(cache.l1) == 1

    await service.delete_task(task_id)

    assert len(cache.l1) == 0
    with pytest.raises(TaskNotFoundError):
        await service.get_task(task_id)


async def test_delete_all_clears_cache(store: TaskStore, cache: CacheLayer, due: datetime) -> None:
    service = TaskService(store, cache)
    ids = [await service.create_task(f"t{i}", [], due) for i in range(3)]
    for task_id in ids:
        await service.get_task(task_id)

    assert await service.delete_all_tasks() == 3
    assert len(cache.l1) == 0
    assert await service.get_all_tasks() == []


async def test_service_without_cache(store: TaskStore, due: datetime) -> None:
    service = TaskService(store)
    task_id = await service.create_task("plain", ["x"], due)

    assert (await service.get_task(task_id)).text == "plain"
    assert [t.id for t in await service.get_tag("x")] == [task_id]
    assert [t.id for t in await service.get_due("2024-03-15")] == [task_id]


async def test_load_racing_invalidation_is_not_stored(cache: CacheLayer) -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_loader():
        started.set()
        await release.wait()
        return {"value": "stale"}

    pending = asyncio.create_task(cache.get("task:1", loader=slow_loader))
    await started.wait()
    await cache.delete("task:1")
    release.set()

    assert await pending == {"value": "stale"}
    assert await cache.get("task:1") is None


async def test_unreachable_redis_degrades_to_l1() -> None:
    cache = CacheLayer(Settings(redis_dsn="redis://127.0.0.1:1/0"))
    await cache.init_cache()

    async def loader():
        return {"id": 1}

    assert await cache.get("k", loader=loader) == {"id": 1}
    assert await cache.get("k") == {"id": 1}
    stats = cache.get_stats()
    assert stats["redis"] is False
    assert stats["l1_hits"] == 1
    await cache.close()
