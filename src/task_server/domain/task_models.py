from __future__ import annotations
from pydantic import BaseModel
from enum import Enum
from datetime import datetime, timezone
from typing import Callable
import uuid

from task_server.domain.task_errors import InvalidIDError, InvalidStatusError, InvalidTitleError


class TaskStatus(str, Enum):
    todo = "TODO"
    done = "DONE"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return str(uuid.uuid4())


def parse_id(task_id: str) -> str:
    s = (task_id or "").strip()
    if not s:
        raise InvalidIDError("task: invalid id")
    return s


def parse_title(title: str) -> str:
    s = (title or "").strip()
    if not s:
        raise InvalidTitleError("task: invalid title")
    return s


def parse_status(status: str) -> TaskStatus:
    # exact match only, "todo" is rejected
    for s in TaskStatus:
        if status == s.value:
            return s
    raise InvalidStatusError(f"task: invalid status {status!r}")


class Task(BaseModel):
    id: str
    title: str
    status: TaskStatus = TaskStatus.todo
    created_at: datetime
    updated_at: datetime

    def update_title(self, title: str) -> None:
        self.title = parse_title(title)
        self.updated_at = utcnow()

    def update_status(self, status: str) -> None:
        self.status = parse_status(status)
        self.updated_at = utcnow()

    def mark_done(self) -> None:
        self.update_status(TaskStatus.done.value)


class TaskFactory:
    def __init__(
        self,
        id_generator: Callable[[], str] = new_task_id,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.id_generator = id_generator
        self.clock = clock

    def new(self, title: str) -> Task:
        now = self.clock()
        return Task(
            id=self.id_generator(),
            title=title,
            status=TaskStatus.todo,
            created_at=now,
            updated_at=now,
        )
