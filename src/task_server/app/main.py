import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from task_server.app.errors import install_error_handlers
from task_server.app.middleware.access_log import AccessLogMiddleware
from task_server.app.routes import tasks
from task_server.domain.task_models import TaskFactory
from task_server.infra.db.sqlite import create_schema, make_engine, make_sessionmaker, make_sqlite_url
from task_server.infra.db.task_repo_memory import InMemoryTaskRepo
from task_server.infra.db.task_repo_sqlite import SQLiteTaskRepo
from task_server.infra.db.tx import MemoryTxManager, SQLTxManager
from task_server.observability.logging import setup_logging
from task_server.services.task_service import TaskService

logger = logging.getLogger("taskserver.system")


def create_app(factory: Optional[TaskFactory] = None) -> FastAPI:
    setup_logging()
    store = os.getenv("TASK_STORE", "sqlite").lower()
    logger.info("system.start", extra={"category": "system", "event": "system.start", "store": store})

    engine = None
    db_path = None
    if store == "memory":
        repo = InMemoryTaskRepo()
        tx_manager = MemoryTxManager()
    elif store == "sqlite":
        db_path = os.getenv("DB_PATH", "./data/tasks.db")
        engine = make_engine(make_sqlite_url(db_path))
        sessionmaker = make_sessionmaker(engine)
        repo = SQLiteTaskRepo(sessionmaker)
        tx_manager = SQLTxManager(sessionmaker)
    else:
        raise ValueError(f"unknown TASK_STORE {store!r}, expected 'sqlite' or 'memory'")

    svc = TaskService(repo, tx_manager, factory)
    tasks.get_service = lambda: svc

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            await create_schema(engine)
            logger.info("db.ready", extra={"category": "system", "event": "db.ready", "db_path": db_path})
        yield
        if engine is not None:
            await engine.dispose()
        logger.info("system.stop", extra={"category": "system", "event": "system.stop"})

    app = FastAPI(title="Task Server", lifespan=lifespan)
    app.add_middleware(AccessLogMiddleware)
    install_error_handlers(app)
    app.include_router(tasks.router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app
