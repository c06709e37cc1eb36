from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, List

from pydantic import BaseModel, ConfigDict, Field

from task_server.domain.task_models import Task
from task_server.lib.query import ScalarKind, query_field


# --- query strings (decoded with lib.query) ---

@dataclass
class GetTaskQuery:
    id: str = query_field("id", default="")


@dataclass
class ListTasksQuery:
    status: List[str] = query_field("status", default_factory=list)
    limit: Annotated[int, ScalarKind.UINT32] = query_field("limit", default=0)


# --- JSON bodies ---
# Fields default to "" so that missing values reach the domain checks
# and come back as TASK_INVALID_* rather than a body error.

class TaskCreateRequest(BaseModel):
    title: str = ""


class TaskUpdateRequest(BaseModel):
    id: str = ""
    title: str = ""
    status: str = ""


class TaskIDRequest(BaseModel):
    id: str = ""


class TaskResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    status: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_task(cls, t: Task) -> "TaskResponse":
        return cls(
            id=t.id,
            title=t.title,
            status=t.status.value,
            created_at=t.created_at,
            updated_at=t.updated_at,
        )
