from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from fastapi.testclient import TestClient

from task_server.app.main import create_app
from task_server.domain.task_models import TaskFactory

EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


def ticking_factory() -> TaskFactory:
    # one second per created task, so newest-first ordering is stable
    ticks = count()
    return TaskFactory(clock=lambda: EPOCH + timedelta(seconds=next(ticks)))


@pytest.fixture
def app_env(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("TASK_STORE", "memory")
    return tmp_path


@pytest.fixture
def client(app_env):
    with TestClient(create_app(ticking_factory())) as c:
        yield c


@pytest.fixture
def sqlite_client(app_env, monkeypatch):
    monkeypatch.setenv("TASK_STORE", "sqlite")
    monkeypatch.setenv("DB_PATH", str(app_env / "data" / "tasks.db"))
    with TestClient(create_app(ticking_factory())) as c:
        yield c
