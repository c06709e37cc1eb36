from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence

from task_server.domain.task_errors import TaskNotFoundError
from task_server.domain.task_models import Task, TaskStatus


class InMemoryTaskRepo:
    """
    Dict-backed store, used for local runs and tests.
    Tasks are copied on the way in and out so callers never share state with the store.
    """
    def __init__(self, tasks: Optional[Dict[str, Task]] = None):
        self._tasks: Dict[str, Task] = tasks if tasks is not None else {}

    async def get(self, task_id: str, tx: Any = None) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError("task: not found", task_id=task_id)
        return task.model_copy()

    async def list(
        self,
        *,
        statuses: Optional[Sequence[TaskStatus]] = None,
        limit: int = 0,
        tx: Any = None,
    ) -> List[Task]:
        tasks = [t for t in self._tasks.values() if not statuses or t.status in statuses]
        # newest first
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        if limit > 0:
            tasks = tasks[:limit]
        return [t.model_copy() for t in tasks]

    async def create(self, task: Task, tx: Any = None) -> None:
        self._tasks[task.id] = task.model_copy()

    async def update(self, task: Task, tx: Any = None) -> None:
        if task.id not in self._tasks:
            raise TaskNotFoundError("task: not found", task_id=task.id)
        self._tasks[task.id] = task.model_copy()

    async def delete(self, task_id: str, tx: Any = None) -> None:
        if self._tasks.pop(task_id, None) is None:
            raise TaskNotFoundError("task: not found", task_id=task_id)
