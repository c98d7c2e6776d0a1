# growth/conftest.py
import os
from datetime import datetime, timezone

import pytest

from growth.core import database
from growth.core.metrics import METRICS
from growth.features.scoring.container import build_container, reset_container
from growth.realtime.hub import BroadcastHub


@pytest.fixture(scope="session")
def db_url():
    """DATABASE_URL for opt-in persistence tests, or None."""
    return os.getenv("DATABASE_URL")


@pytest.fixture(autouse=True)
def in_memory_defaults(monkeypatch):
    """
    Every test starts on the in-memory stores with clean metrics.

    SQL-backed tests opt in through the sqlite_db fixture.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    reset_container()
    METRICS.reset()
    yield
    reset_container()


@pytest.fixture
def fixed_now():
    """Fixed timestamp for deterministic testing."""
    return datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def container():
    """Fresh in-memory wiring with its own hub and no pause between recalc chunks."""
    built = build_container(hub=BroadcastHub())
    built.service.recalc_delay_seconds = 0
    return built


@pytest.fixture
def sqlite_db(tmp_path, monkeypatch):
    """Point the engine at a throwaway sqlite file with all tables created."""
    url = f"sqlite:///{tmp_path / 'growth.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    database.init_engine(url)
    database.create_all_tables()
    yield url
    database.get_engine().dispose()
    database._engine = None
    database._SessionLocal = None
