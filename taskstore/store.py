import asyncio
import logging
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from taskstore.core.errors import StorageError, TaskNotFoundError
from taskstore.database import create_db_and_tables, create_engine, create_session_factory
from taskstore.models import Task, TaskRecord

logger = logging.getLogger(__name__)

# Stored form of a due date: "2024-03-15 09:00:00 +0000 UTC", with
# ".ffffff" after the seconds when the value has microseconds.
DUE_TIME_FORMAT = "%H:%M:%S"
DUE_ZONE_FORMAT = "%z %Z"
DUE_PARSE_FORMATS = ("%Y-%m-%d %H:%M:%S.%f %z", "%Y-%m-%d %H:%M:%S %z")

TAG_SEPARATOR = " "


def format_due(due: datetime) -> str:
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    time_format = DUE_TIME_FORMAT + (".%f" if due.microsecond else "")
    # strftime("%Y") does not zero-pad years below 1000
    return f"{due.year:04d}-" + due.strftime(f"%m-%d {time_format} {DUE_ZONE_FORMAT}")


def parse_due(raw: str) -> datetime:
    """Inverse of format_due. The trailing zone abbreviation is ignored."""
    head = " ".join(raw.split(" ")[:3])
    for fmt in DUE_PARSE_FORMATS:
        try:
            return datetime.strptime(head, fmt)
        except ValueError:
            continue
    raise StorageError(f"corrupt due date {raw!r}")


def join_tags(tags: Sequence[str]) -> str:
    return TAG_SEPARATOR.join(tags)


def split_tags(raw: str) -> list[str]:
    return raw.split()


class TaskStore:
    """
    Task persistence over an async SQLAlchemy engine.

    Every public operation holds one asyncio.Lock for its whole duration, so
    the database is accessed by a single operation at a time. Engine errors
    are re-raised as StorageError; empty lookups raise TaskNotFoundError.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self._engine = create_engine(database_url, echo=echo)
        self._session = create_session_factory(self._engine)
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create the task table if it does not exist yet."""
        async with self._lock:
            try:
                await create_db_and_tables(self._engine)
            except SQLAlchemyError as e:
                logger.exception("Failed to initialize task store at %s", self.database_url)
                raise StorageError(f"cannot initialize database: {e}") from e
        logger.info("TaskStore ready db=%s", self.database_url)

    async def close(self) -> None:
        await self._engine.dispose()

    @staticmethod
    def _to_task(row: TaskRecord) -> Task:
        return Task(
            id=row.id,
            text=row.task,
            tags=split_tags(row.tags),
            due=parse_due(row.time),
        )

    async def _select(self, query) -> list[Task]:
        try:
            async with self._session() as session:
                result = await session.exec(query)
                rows = result.all()
        except SQLAlchemyError as e:
            logger.exception("Task query failed")
            raise StorageError(str(e)) from e
        return [self._to_task(row) for row in rows]

    async def create_task(self, text: str, tags: Sequence[str], due: datetime) -> int:
        async with self._lock:
            record = TaskRecord(task=text, tags=join_tags(tags), time=format_due(due))
            try:
                async with self._session() as session:
                    session.add(record)
                    await session.commit()
                    await session.refresh(record)
            except SQLAlchemyError as e:
                logger.exception("Task insert failed")
                raise StorageError(str(e)) from e
            logger.debug("Task created id=%s tags=%s due=%s", record.id, record.tags, record.time)
            return record.id

    async def get_task(self, task_id: int) -> Task:
        async with self._lock:
            tasks = await self._select(select(TaskRecord).where(TaskRecord.id == task_id))
        if not tasks:
            raise TaskNotFoundError(task_id)
        return tasks[0]

    async def get_tag(self, name: str) -> list[Task]:
        """Tasks whose tag string contains ``name`` (case-sensitive)."""
        query = (
            select(TaskRecord)
            .where(col(TaskRecord.tags).contains(name, autoescape=True))
            .order_by(col(TaskRecord.id))
        )
        async with self._lock:
            tasks = await self._select(query)
        if not tasks:
            raise TaskNotFoundError(name, what="tag")
        return tasks

    async def get_due(self, date: str) -> list[Task]:
        """Tasks whose stored due date contains ``date``, e.g. "2024-03-15"."""
        query = (
            select(TaskRecord)
            .where(col(TaskRecord.time).contains(date, autoescape=True))
            .order_by(col(TaskRecord.id))
        )
        async with self._lock:
            tasks = await self._select(query)
        if not tasks:
            raise TaskNotFoundError(date, what="due date")
        return tasks

    async def get_all_tasks(self) -> list[Task]:
        async with self._lock:
            return await self._select(select(TaskRecord).order_by(col(TaskRecord.id)))

    async def delete_task(self, task_id: int) -> None:
        async with self._lock:
            try:
                async with self._session() as session:
                    result = await session.exec(delete(TaskRecord).where(TaskRecord.id == task_id))
                    await session.commit()
            except SQLAlchemyError as e:
                logger.exception("Task delete failed id=%s", task_id)
                raise StorageError(str(e)) from e
            if result.rowcount == 0:
                raise TaskNotFoundError(task_id)
            logger.debug("Task deleted id=%s", task_id)

    async def delete_all_tasks(self) -> int:
        async with self._lock:
            try:
                async with self._session() as session:
                    result = await session.exec(delete(TaskRecord))
                    await session.commit()
            except SQLAlchemyError as e:
                logger.exception("Task delete-all failed")
                raise StorageError(str(e)) from e
            logger.debug("Deleted all tasks count=%s", result.rowcount)
            return result.rowcount
