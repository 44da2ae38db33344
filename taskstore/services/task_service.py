from datetime import datetime
from typing import Sequence

from taskstore.cache.decorators import async_cached, async_cached_expire
from taskstore.cache.layer import CacheLayer
from taskstore.models import Task
from taskstore.store import TaskStore


class TaskService:
    """Operations used by the routers. Single-task reads go through the cache."""

    def __init__(self, store: TaskStore, cache: CacheLayer | None = None):
        self.store = store
        self.cache = cache

    async def create_task(self, text: str, tags: Sequence[str], due: datetime) -> int:
        return await self.store.create_task(text, tags, due)

    async def get_task(self, task_id: int) -> Task:
        return Task.model_validate(await self._load_task(task_id))

    @async_cached(lambda task_id: f"task:{task_id}", l2_ttl=120)
    async def _load_task(self, task_id: int):
        return await self.store.get_task(task_id)

    async def get_all_tasks(self) -> list[Task]:
        return await self.store.get_all_tasks()

    async def get_tag(self, name: str) -> list[Task]:
        return await self.store.get_tag(name)

    async def get_due(self, date: str) -> list[Task]:
        return await self.store.get_due(date)

    @async_cached_expire(lambda task_id: f"task:{task_id}")
    async def delete_task(self, task_id: int) -> None:
        await self.store.delete_task(task_id)

    async def delete_all_tasks(self) -> int:
        try:
            return await self.store.delete_all_tasks()
        finally:
            if self.cache is not None:
                await self.cache.delete_pattern("task:*")
