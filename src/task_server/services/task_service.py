import logging
from typing import List, Optional, Sequence

from task_server.domain.task_models import Task, TaskFactory, parse_id, parse_status, parse_title
from task_server.domain.task_repo import TaskRepo

logger = logging.getLogger("taskserver.tasks")


class TaskService:
    def __init__(self, repo: TaskRepo, tx_manager, factory: Optional[TaskFactory] = None):
        self.repo = repo
        self.tx_manager = tx_manager
        self.factory = factory or TaskFactory()

    async def get_task(self, task_id: str) -> Task:
        return await self.repo.get(parse_id(task_id))

    async def list_tasks(self, statuses: Sequence[str] = (), limit: int = 0) -> List[Task]:
        parsed = [parse_status(s) for s in statuses]
        return await self.repo.list(statuses=parsed or None, limit=limit)

    async def create_task(self, title: str) -> Task:
        task = self.factory.new(parse_title(title))
        await self.repo.create(task)
        logger.info("task.create", extra={"category": "tasks", "event": "task.create", "task_id": task.id, "title": task.title})
        return task

    async def update_task(self, task_id: str, title: str, status: str) -> Task:
        pid = parse_id(task_id)
        pt = parse_title(title)
        ps = parse_status(status)
        async with self.tx_manager.within_tx() as tx:
            task = await self.repo.get(pid, tx=tx)
            task.update_title(pt)
            task.update_status(ps.value)
            await self.repo.update(task, tx=tx)
        logger.info("task.update", extra={"category": "tasks", "event": "task.update", "task_id": pid, "status": ps.value})
        return task

    async def delete_task(self, task_id: str) -> None:
        pid = parse_id(task_id)
        await self.repo.delete(pid)
        logger.info("task.delete", extra={"category": "tasks", "event": "task.delete", "task_id": pid})

    async def done_task(self, task_id: str) -> Task:
        pid = parse_id(task_id)
        async with self.tx_manager.within_tx() as tx:
            task = await self.repo.get(pid, tx=tx)
            task.mark_done()
            await self.repo.update(task, tx=tx)
        logger.info("task.done", extra={"category": "tasks", "event": "task.done", "task_id": pid})
        return task
