# backend/conftest.py
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add repository root to PYTHONPATH so `backend.*` imports resolve without installation
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

# Test configuration must be in place before backend.core.config is imported.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="gymbro-tests-")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.setdefault("TEST_DATABASE_URL", f"sqlite:///{_TEST_DB_DIR}/gymbro-test.db")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret-for-the-gymbro-suite")
os.environ.setdefault("STREAK_TIMEZONE", "UTC")


@pytest.fixture(scope="session")
def db_url():
    """Database URL used for the whole test session."""
    return os.environ["TEST_DATABASE_URL"]


@pytest.fixture(scope="session", autouse=True)
def create_tables(db_url):
    """
    Create all database tables before running tests.

    Runs once per test session against the SQLite test database.
    """
    from backend.core.database import create_all_tables, dispose_engine, init_engine

    init_engine(db_url)
    create_all_tables()
    yield
    dispose_engine()


@pytest.fixture(scope="function", autouse=True)
def reset_db(create_tables):
    """
    Empty every table before each test so tests start from a clean slate.
    """
    from backend.core.database import truncate_all_tables
    from backend.core.metrics import METRICS

    truncate_all_tables()
    METRICS.reset()
    yield


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from backend.main import app

    return TestClient(app)


@pytest.fixture
def as_user():
    """Build X-User-Id headers for a test user."""
    def _headers(user_id: str) -> dict:
        return {"X-User-Id": user_id}
    return _headers
