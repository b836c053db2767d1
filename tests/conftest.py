"""Shared fixtures for Kaiwa test suite."""

import os
import tempfile

# Point every file Kaiwa writes (log, config, conversations.db) at a scratch
# directory before any kaiwa module is imported.
os.environ["KAIWA_HOME"] = tempfile.mkdtemp(prefix="kaiwa-test-")
os.environ["KAIWA_LLM_PROVIDER"] = "offline"

import pytest
from fastapi.testclient import TestClient


def _reset_all_singletons():
    from kaiwa.config.loader import reset_config
    from kaiwa.history.store import ConversationStore
    reset_config()
    ConversationStore.reset()


@pytest.fixture(autouse=True, scope="module")
def _reset_singletons_between_modules():
    """Auto-reset cached config and the store at the start of every test module."""
    _reset_all_singletons()
    yield
    _reset_all_singletons()


@pytest.fixture
def store(tmp_path):
    """A fresh ConversationStore on its own database file."""
    from kaiwa.history.store import ConversationStore
    s = ConversationStore(str(tmp_path / "conversations.db"))
    yield s
    s.close_all()


@pytest.fixture(scope="module")
def client():
    """FastAPI TestClient backed by the Kaiwa app."""
    from kaiwa.api import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def users_context():
    return {
        "users": [
            {"id": i, "name": f"user{i}", "email": f"user{i}@example.com", "active": i % 2 == 0}
            for i in range(1, 16)
        ],
        "roles": ["admin", "viewer"],
    }


@pytest.fixture
def status_context():
    return {
        "status": "Healthy",
        "uptime": "3d 4h 12m",
        "alerts": [{"severity": "warning", "message": "Disk usage at 80%"}],
        "cpu": {"percent": 42.5},
        "memory": {"percent": 61.0},
    }
