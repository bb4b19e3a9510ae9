"""
Shared test setup.

Environment is pinned before any aita module is imported: no AI
provider (rules only), a throwaway database, generous rate limits,
and cheap password hashing.
"""

import os
import random
import tempfile

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix="aita-tests-")

os.environ["GEMINI_API_KEY"] = ""
os.environ["AITA_DB_PATH"] = os.path.join(_TMP_DIR, "aita_test.db")
os.environ["AITA_RATE_PER_MINUTE"] = "1000"
os.environ["AITA_RATE_PER_HOUR"] = "10000"
os.environ["AITA_PASSWORD_ITERATIONS"] = "1000"
os.environ["AITA_ADMIN_USERNAMES"] = "judge_admin"
os.environ["AITA_LOG_FORMAT"] = "text"


@pytest.fixture
def rng():
    """Seeded random source for reproducible reasoning draws."""
    return random.Random(1234)


@pytest.fixture
def store(tmp_path):
    from aita.store import SubmissionStore
    return SubmissionStore(db_path=str(tmp_path / "store.db"))
