from __future__ import annotations
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, List, Optional, Sequence

from sqlalchemy import String, DateTime, delete, select
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from task_server.domain.task_errors import TaskNotFoundError
from task_server.domain.task_models import Task, TaskStatus


class Base(DeclarativeBase):
    pass


def _aware(dt: datetime) -> datetime:
    # SQLite drops the offset; everything is stored as UTC
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


class TaskRow(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, task: Task) -> "TaskRow":
        return cls(
            id=task.id,
            title=task.title,
            status=task.status.value,
            created_at=task.created_at.astimezone(timezone.utc),
            updated_at=task.updated_at.astimezone(timezone.utc),
        )

    def to_domain(self) -> Task:
        return Task(
            id=self.id,
            title=self.title,
            status=TaskStatus(self.status),
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
        )


class SQLiteTaskRepo:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self.sessionmaker = sessionmaker

    @asynccontextmanager
    async def _session(self, tx: Optional[AsyncSession]) -> AsyncIterator[AsyncSession]:
        # join the caller's transaction, otherwise run in a short one of our own
        if tx is not None:
            yield tx
            return
        async with self.sessionmaker() as session, session.begin():
            yield session

    async def get(self, task_id: str, tx: Any = None) -> Task:
        async with self._session(tx) as session:
            row = await session.get(TaskRow, task_id)
            if row is None:
                raise TaskNotFoundError("task: not found", task_id=task_id)
            return row.to_domain()

    async def list(
        self,
        *,
        statuses: Optional[Sequence[TaskStatus]] = None,
        limit: int = 0,
        tx: Any = None,
    ) -> List[Task]:
        stmt = select(TaskRow).order_by(TaskRow.created_at.desc())
        if statuses:
            stmt = stmt.where(TaskRow.status.in_([s.value for s in statuses]))
        if limit > 0:
            stmt = stmt.limit(limit)
        async with self._session(tx) as session:
            res = await session.execute(stmt)
            return [r.to_domain() for r in res.scalars().all()]

    async def create(self, task: Task, tx: Any = None) -> None:
        async with self._session(tx) as session:
            session.add(TaskRow.from_domain(task))
            await session.flush()

    async def update(self, task: Task, tx: Any = None) -> None:
        async with self._session(tx) as session:
            row = await session.get(TaskRow, task.id)
            if row is None:
                raise TaskNotFoundError("task: not found", task_id=task.id)
            row.title = task.title
            row.status = task.status.value
            row.updated_at = task.updated_at.astimezone(timezone.utc)
            await session.flush()

    async def delete(self, task_id: str, tx: Any = None) -> None:
        async with self._session(tx) as session:
            res = await session.execute(delete(TaskRow).where(TaskRow.id == task_id))
            if res.rowcount == 0:
                raise TaskNotFoundError("task: not found", task_id=task_id)
