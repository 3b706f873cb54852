"""
Shared fixtures: every test that touches storage gets its own SQLite file.
"""

import pytest

from recordsync.core import heartbeat
from recordsync.core.db import init_db


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point DB_PATH at a fresh database and create the schema."""
    db_path = tmp_path / "sync.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    monkeypatch.setenv("RETENTION_ENABLED", "false")
    init_db()
    return str(db_path)


@pytest.fixture
def reset_heartbeat():
    """Reset heartbeat state before and after a test."""
    heartbeat.stop(timeout=1.0)
    heartbeat.tasks.clear()
    heartbeat.running = False
    heartbeat.shutdown_event = None
    yield
    heartbeat.stop(timeout=1.0)
    heartbeat.tasks.clear()
    heartbeat.running = False
    heartbeat.shutdown_event = None
