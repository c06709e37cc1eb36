from typing import Dict, List

from fastapi import APIRouter, Request, Response
from task_server.app.schemas import (
    GetTaskQuery,
    ListTasksQuery,
    TaskCreateRequest,
    TaskIDRequest,
    TaskResponse,
    TaskUpdateRequest,
)
from task_server.lib.query import decode
from task_server.services.task_service import TaskService

router = APIRouter(prefix="/core/v1/task", tags=["tasks"])


def get_service() -> TaskService:
    # Overwritten in main.py:
    # tasks.get_service = lambda: svc
    raise RuntimeError("TaskService not wired")


def query_params(request: Request) -> Dict[str, List[str]]:
    qp = request.query_params
    return {key: qp.getlist(key) for key in qp.keys()}


@router.get("/get", response_model=TaskResponse)
async def get_task(request: Request):
    q = decode(query_params(request), GetTaskQuery())
    task = await get_service().get_task(q.id)
    return TaskResponse.from_task(task)


@router.get("/list", response_model=list[TaskResponse])
async def list_tasks(request: Request):
    q = decode(query_params(request), ListTasksQuery())
    tasks = await get_service().list_tasks(statuses=q.status, limit=q.limit)
    return [TaskResponse.from_task(t) for t in tasks]


@router.post("/create", response_model=TaskResponse)
async def create_task(payload: TaskCreateRequest):
    task = await get_service().create_task(payload.title)
    return TaskResponse.from_task(task)


@router.put("/update", response_model=TaskResponse)
async def update_task(payload: TaskUpdateRequest):
    task = await get_service().update_task(payload.id, payload.title, payload.status)
    return TaskResponse.from_task(task)


@router.delete("/delete", status_code=204)
async def delete_task(payload: TaskIDRequest):
    await get_service().delete_task(payload.id)
    return Response(status_code=204)


@router.put("/done", response_model=TaskResponse)
async def done_task(payload: TaskIDRequest):
    task = await get_service().done_task(payload.id)
    return TaskResponse.from_task(task)
