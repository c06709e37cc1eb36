from typing import Optional


class TaskError(Exception):
    """Base class for task domain failures."""

    def __init__(self, message: str, *, task_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.task_id = task_id


class InvalidIDError(TaskError):
    pass


class InvalidTitleError(TaskError):
    pass


class InvalidStatusError(TaskError):
    pass


class TaskNotFoundError(TaskError):
    pass
