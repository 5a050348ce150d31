"""
Global pytest fixtures for the Shorty Platform test suite.

Responsibilities:
    - Provide fresh memory and file storage fixtures for direct testing
    - Provide a `storage` fixture parameterized over every available backend
      (memory and file always, postgres only when SHORTY_DB_DSN is set)
    - Provide a URLManager wired to in-memory storage
    - Provide a FastAPI TestClient built through the app factory

Why an app factory?
    `create_app()` gives each test fresh in-memory state, eliminating
    cross-test flakiness.
"""

import os

import pytest
from fastapi.testclient import TestClient

from main import create_app
from shorty_platform.config import Settings
from shorty_platform.manager.url_manager import URLManager
from shorty_platform.storage.file_storage import FileStorage
from shorty_platform.storage.memory_storage import MemoryStorage

BASE_URL = "http://short.test"


def available_backends():
    backends = ["memory", "file"]
    if os.getenv("SHORTY_DB_DSN"):
        backends.append("postgres")
    return backends


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def log_path(tmp_path) -> str:
    return str(tmp_path / "data" / "urls.jsonl")


@pytest.fixture
def file_storage(log_path) -> FileStorage:
    return FileStorage(log_path)


@pytest.fixture(params=available_backends())
def storage(request, tmp_path):
    """
    Every backend behind the same contract.

    The postgres table is truncated before and after each test, so point
    SHORTY_DB_DSN at a throwaway database.
    """
    backend = request.param
    if backend == "memory":
        yield MemoryStorage()
    elif backend == "file":
        yield FileStorage(str(tmp_path / "urls.jsonl"))
    else:
        from shorty_platform.storage.db_storage import DBStorage
        db = DBStorage(os.environ["SHORTY_DB_DSN"])
        db.open()
        db.clear()
        yield db
        db.clear()


@pytest.fixture
def manager(memory_storage):
    """URLManager over in-memory storage with a predictable base URL."""
    mgr = URLManager(storage=memory_storage, base_url=BASE_URL, max_retries=5, delete_workers=2)
    yield mgr
    mgr.shutdown(wait=True)


@pytest.fixture
def app_settings() -> Settings:
    return Settings(
        storage_backend="memory",
        base_url=BASE_URL,
        cookie_secret="test-secret",
        trusted_subnet="10.0.0.0/8",
    )


@pytest.fixture
def app(app_settings):
    return create_app(settings=app_settings, storage=MemoryStorage())


@pytest.fixture
def client(app) -> TestClient:
    """Fresh TestClient; the context manager runs lifespan shutdown."""
    with TestClient(app, follow_redirects=False) as c:
        yield c
