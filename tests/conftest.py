"""Test-specific fixtures.

Every test gets its own SQLite file and upload directory under ``tmp_path``;
apps are built from an explicit ``Settings`` object, never from the process
environment.
"""

import logging
import sys
from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from catchall.config import Settings
from catchall.db.core import Database
from catchall.main import create_app

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep stray environment variables from leaking into Settings."""
    for name in (
        "HOST",
        "PORT",
        "ENV",
        "DATABASE_URL",
        "ADMIN_TOKEN",
        "MAX_BODY_BYTES",
        "UPLOAD_DIR",
        "REDACTED_FIELDS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(scope="session", autouse=True)
def sane_logging():
    """Force a simple stdout handler for the whole test session."""
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    h = logging.StreamHandler(sys.stdout)
    h.setLevel(logging.INFO)
    root.addHandler(h)
    root.setLevel(logging.INFO)
    yield


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    def _make(**overrides) -> Settings:
        values = {
            "admin_token": ADMIN_TOKEN,
            "env": "test",
            "database_url": f"sqlite:///{tmp_path / 'db.sqlite'}",
            "upload_dir": str(tmp_path / "uploads"),
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def make_client(make_settings):
    """Build a started TestClient (lifespan run) for the given overrides."""
    clients = []

    def _make(**overrides) -> TestClient:
        client = TestClient(create_app(make_settings(**overrides)))
        client.__enter__()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
async def db(settings):
    database = Database(settings.database_url)
    await database.create_all()
    try:
        yield database
    finally:
        await database.dispose()
