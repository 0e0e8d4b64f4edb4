"""
Shared pytest fixtures and path setup for unit tests.
"""

import os
import sys
from pathlib import Path

# Set environment variables BEFORE any unblocked imports so Settings never
# picks up a developer's .env values. These are test-only defaults.
os.environ["UNBLOCKED_ENVIRONMENT"] = "test"
os.environ.setdefault("UNBLOCKED_SECRET", "test-secret-for-unit-tests")
os.environ.pop("UNBLOCKED_DATABASE_URL", None)
os.environ.pop("UNBLOCKED_REDIS_URL", None)

# Add backend/src to sys.path so unblocked.* imports work when running pytest from repo root.
PROJECT_SRC = Path(__file__).resolve().parents[2]
if str(PROJECT_SRC) not in sys.path:
    sys.path.insert(0, str(PROJECT_SRC))

import pytest

from unblocked.core.config import Settings, reset_settings_instance


@pytest.fixture(autouse=True)
def _isolate_singletons():
    """Drop cached settings between tests."""
    reset_settings_instance()
    yield
    reset_settings_instance()


@pytest.fixture
def test_settings():
    """Settings for a non-production test environment."""
    return Settings(UNBLOCKED_ENVIRONMENT="test", UNBLOCKED_SECRET="test-secret")


@pytest.fixture
def production_settings():
    return Settings(UNBLOCKED_ENVIRONMENT="production", UNBLOCKED_SECRET="test-secret")


@pytest.fixture
def sqlite_url(tmp_path):
    """File-backed SQLite URL; each test gets its own database."""
    return f"sqlite+aiosqlite:///{tmp_path / 'unblocked.db'}"
