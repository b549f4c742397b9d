"""
Pytest configuration and fixtures for Watchquota tests.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Keep test runs from writing log files into the working tree
os.environ.setdefault("WATCHQUOTA_LOG_DIR", tempfile.mkdtemp(prefix="watchquota-logs-"))

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from watchquota.database.database import Database  # noqa: E402


@pytest.fixture
async def database(tmp_path):
    """An initialized store in a temporary directory, without retry delays."""
    db = Database(tmp_path / "test.db", retry_base_delay=0.0, quota_cache_ttl_seconds=60.0)
    await db.initialize_database()
    yield db
    await db.close()
