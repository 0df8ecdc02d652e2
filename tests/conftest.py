"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like temp-file SQLite stores.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "America/New_York")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_syllabus_calendar.db")


@pytest.fixture
def user_db(tmp_db_path):
    from src.data.db import UserDB
    return UserDB(db_path=tmp_db_path)


@pytest.fixture
def class_db(tmp_db_path):
    from src.data.db import ClassDB
    return ClassDB(db_path=tmp_db_path)


@pytest.fixture
def syllabus_db(tmp_db_path):
    from src.data.db import SyllabusDB
    return SyllabusDB(db_path=tmp_db_path)


@pytest.fixture
def event_db(tmp_db_path):
    from src.data.db import EventDB
    return EventDB(db_path=tmp_db_path)


@pytest.fixture
def llm_config():
    """An LLM config with a key and no retry delay."""
    from src.core.llm import LLMConfig
    return LLMConfig(
        provider="gemini",
        model="gemini-test",
        api_key="test-key",
        endpoint="https://llm.example.test/{model}:generateContent",
        max_retries=1,
        retry_base_delay=0,
    )


@pytest.fixture
def sample_class(class_db):
    """A class owned by the authorized test user."""
    return class_db.add_class(user_id=12345, name="Introduction to Psychology", code="PSY 101")


def make_stored_event(**overrides):
    """Build a StoredCalendarEvent with sensible defaults."""
    from src.data.models import StoredCalendarEvent

    fields = dict(
        class_id=1,
        user_id=12345,
        title="Problem Set 1",
        event_type="assignment",
        due_date="2024-09-15",
        extraction_method="llm",
        confidence_score=0.9,
    )
    fields.update(overrides)
    return StoredCalendarEvent(**fields)


@pytest.fixture
def make_event():
    """Factory fixture for StoredCalendarEvent."""
    return make_stored_event
