from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from task_server.domain.task_errors import (
    InvalidIDError,
    InvalidStatusError,
    InvalidTitleError,
    TaskError,
    TaskNotFoundError,
)
from task_server.lib.query import QueryError

logger = logging.getLogger("taskserver.http")


class ErrorCode(str, Enum):
    # 4xx
    invalid_request_body = "INVALID_REQUEST_BODY"
    invalid_request_query = "INVALID_REQUEST_QUERY"
    task_invalid_id = "TASK_INVALID_ID"
    task_invalid_title = "TASK_INVALID_TITLE"
    task_invalid_status = "TASK_INVALID_STATUS"
    not_found = "NOT_FOUND"
    method_not_allowed = "METHOD_NOT_ALLOWED"
    # 5xx
    internal_server_error = "INTERNAL_SERVER_ERROR"


# first matching entry wins
ERROR_MAP: List[Tuple[Type[Exception], int, ErrorCode]] = [
    (QueryError, 400, ErrorCode.invalid_request_query),
    (InvalidIDError, 400, ErrorCode.task_invalid_id),
    (InvalidTitleError, 400, ErrorCode.task_invalid_title),
    (InvalidStatusError, 400, ErrorCode.task_invalid_status),
    (TaskNotFoundError, 404, ErrorCode.not_found),
]


def render_error(status_code: int, code: ErrorCode, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"errorCode": code.value}, headers=headers)


def _request_extra(request: Request) -> dict:
    return {
        "category": "http",
        "request_id": getattr(request.state, "request_id", None),
        "method": request.method,
        "path": request.url.path,
    }


async def _mapped_error(request: Request, exc: Exception) -> JSONResponse:
    for exc_type, status_code, code in ERROR_MAP:
        if isinstance(exc, exc_type):
            logger.warning(
                "request.rejected",
                extra={**_request_extra(request), "event": "request.rejected", "error_code": code.value, "err": str(exc)},
            )
            return render_error(status_code, code)
    return await _unhandled_error(request, exc)


async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(
        "request.invalid_body",
        extra={**_request_extra(request), "event": "request.invalid_body", "errors": str(exc.errors())},
    )
    return render_error(400, ErrorCode.invalid_request_body)


# routing failures raised by the framework itself (unknown path, wrong method)
ROUTING_CODES: Dict[int, ErrorCode] = {
    404: ErrorCode.not_found,
    405: ErrorCode.method_not_allowed,
}


async def _routing_error(request: Request, exc: StarletteHTTPException):
    code = ROUTING_CODES.get(exc.status_code)
    if code is None:
        return await http_exception_handler(request, exc)
    logger.warning(
        "request.rejected",
        extra={**_request_extra(request), "event": "request.rejected", "error_code": code.value, "err": str(exc.detail)},
    )
    return render_error(exc.status_code, code, headers=getattr(exc, "headers", None))


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "request.failed",
        exc_info=exc,
        extra={**_request_extra(request), "event": "request.failed"},
    )
    return render_error(500, ErrorCode.internal_server_error)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QueryError, _mapped_error)
    app.add_exception_handler(TaskError, _mapped_error)
    app.add_exception_handler(RequestValidationError, _invalid_body)
    app.add_exception_handler(StarletteHTTPException, _routing_error)
    app.add_exception_handler(Exception, _unhandled_error)
