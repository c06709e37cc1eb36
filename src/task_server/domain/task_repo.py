from __future__ import annotations
from typing import Any, List, Optional, Protocol, Sequence

from task_server.domain.task_models import Task, TaskStatus


class TaskRepo(Protocol):
    """Storage port shared by the in-memory and SQLite repositories.

    ``tx`` is whatever handle the matching tx manager yields from
    ``within_tx()``; ``None`` means run outside a transaction.
    """

    async def get(self, task_id: str, tx: Any = None) -> Task: ...

    async def list(
        self,
        *,
        statuses: Optional[Sequence[TaskStatus]] = None,
        limit: int = 0,
        tx: Any = None,
    ) -> List[Task]: ...

    async def create(self, task: Task, tx: Any = None) -> None: ...

    async def update(self, task: Task, tx: Any = None) -> None: ...

    async def delete(self, task_id: str, tx: Any = None) -> None: ...
