from datetime import datetime, timezone

from pydantic import ConfigDict, field_validator
from sqlalchemy import Text
from sqlmodel import Field, SQLModel


class TaskRecord(SQLModel, table=True):
    """Database row. Only the store reads or writes these."""

    __tablename__ = "task"
    __table_args__ = {"sqlite_autoincrement": True}

    id: int | None = Field(default=None, primary_key=True)
    task: str = Field(sa_type=Text)
    tags: str = Field(sa_type=Text)
    time: str = Field(sa_type=Text)


class TaskBase(SQLModel):
    """Base model with shared fields"""

    text: str
    tags: list[str]
    due: datetime


class Task(TaskBase):
    """A stored task as returned to callers"""

    id: int


class TaskCreate(TaskBase):
    """Schema for creating a task"""

    model_config = ConfigDict(extra="forbid")

    @field_validator("tags")
    @classmethod
    def tags_are_words(cls, tags: list[str]) -> list[str]:
        for tag in tags:
            if not tag or tag != "".join(tag.split()):
                raise ValueError(f"tag must be non-empty without whitespace: {tag!r}")
        return tags

    @field_validator("due")
    @classmethod
    def due_is_aware(cls, due: datetime) -> datetime:
        if due.tzinfo is None:
            return due.replace(tzinfo=timezone.utc)
        return due


class TaskCreated(SQLModel):
    """Response for a created task"""

    id: int
