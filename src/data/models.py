"""
Syllabus Calendar — Data Models.

Persistent shapes stored in SQLite: users, their classes, uploaded
syllabi and the calendar events extracted from them (or synced from
Google Calendar).
"""

from __future__ import annotations

from dataclasses import dataclass

# Categories accepted at the storage layer. Wider than what extraction
# validation lets through: "other" and "google_calendar" mark provenance.
STORED_EVENT_TYPES = frozenset({
    "assignment", "exam", "quiz", "project", "reading", "deadline",
    "other", "google_calendar",
})

EXTRACTION_METHODS = frozenset({
    "llm", "upload_workflow", "google_calendar_sync", "google_calendar_import", "manual",
})

PROCESSING_STATUSES = ("pending", "processing", "completed", "failed")


@dataclass
class User:
    """A registered bot user and their Google Calendar connection."""

    telegram_user_id: int
    display_name: str
    google_token_json: str | None = None
    google_email: str | None = None
    created_at: str = ""

    @property
    def google_connected(self) -> bool:
        return bool(self.google_token_json)


@dataclass
class AcademicClass:
    """A course the user tracks, e.g. "Torts I" for Fall 2024."""

    id: int
    user_id: int
    name: str
    code: str | None = None
    instructor: str | None = None
    semester: str | None = None
    academic_year: str | None = None
    created_at: str = ""


@dataclass
class Syllabus:
    """An uploaded syllabus. content_text is kept so it can be reprocessed."""

    id: int
    class_id: int
    user_id: int
    original_filename: str
    file_type: str
    file_size: int
    content_text: str | None = None
    processing_status: str = "pending"   # pending | processing | completed | failed
    processing_error: str | None = None
    created_at: str = ""


@dataclass
class StoredCalendarEvent:
    """A calendar event owned by a user and class.

    Created once per extraction batch; later mutated only by export and
    sync (is_exported, exported_at, ics_uid, google_event_id).
    """

    class_id: int
    user_id: int
    title: str
    event_type: str
    due_date: str                         # ISO date YYYY-MM-DD
    extraction_method: str                # provenance tag, see EXTRACTION_METHODS
    syllabus_id: int | None = None
    description: str | None = None
    due_time: str | None = None           # HH:MM, 24h
    confidence_score: float | None = None
    source_text: str = ""
    is_exported: bool = False
    exported_at: str | None = None
    ics_uid: str | None = None
    google_event_id: str | None = None
    id: int | None = None
    created_at: str = ""
    updated_at: str = ""
