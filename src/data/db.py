"""
Syllabus Calendar — SQLite storage.

One database file holds users, classes, syllabi and calendar events.
Each store opens a short-lived connection per operation; `with conn:`
commits on success and rolls back on any exception.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from src.core.errors import ClassNotFound, DuplicateClass, StorageWriteError
from src.core.validation import parse_iso_date
from src.data.models import (
    STORED_EVENT_TYPES,
    AcademicClass,
    StoredCalendarEvent,
    Syllabus,
    User,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    telegram_user_id   INTEGER PRIMARY KEY,
    display_name       TEXT NOT NULL,
    google_token_json  TEXT,
    google_email       TEXT,
    created_at         TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS classes (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id        INTEGER NOT NULL,
    name           TEXT    NOT NULL,
    code           TEXT,
    instructor     TEXT,
    semester       TEXT,
    academic_year  TEXT,
    created_at     TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS syllabi (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    class_id           INTEGER NOT NULL,
    user_id            INTEGER NOT NULL,
    original_filename  TEXT    NOT NULL,
    file_type          TEXT    NOT NULL,
    file_size          INTEGER NOT NULL DEFAULT 0,
    content_text       TEXT,
    processing_status  TEXT    NOT NULL DEFAULT 'pending',
    processing_error   TEXT,
    created_at         TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS calendar_events (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    syllabus_id        INTEGER,
    class_id           INTEGER NOT NULL,
    user_id            INTEGER NOT NULL,
    title              TEXT    NOT NULL,
    description        TEXT,
    event_type         TEXT    NOT NULL,
    due_date           TEXT    NOT NULL,
    due_time           TEXT,
    confidence_score   REAL CHECK (confidence_score IS NULL
                                   OR (confidence_score >= 0 AND confidence_score <= 1)),
    source_text        TEXT    NOT NULL DEFAULT '',
    extraction_method  TEXT    NOT NULL,
    is_exported        INTEGER NOT NULL DEFAULT 0,
    exported_at        TEXT,
    ics_uid            TEXT,
    google_event_id    TEXT,
    created_at         TEXT    NOT NULL,
    updated_at         TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_user_date ON calendar_events (user_id, due_date);
"""


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


class _SQLiteStore:
    """Shared connection handling. All stores create the full schema."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("%s initialized at %s", type(self).__name__, self._db_path)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserDB(_SQLiteStore):
    """Registered bot users and their Google Calendar tokens."""

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            telegram_user_id=row["telegram_user_id"],
            display_name=row["display_name"],
            google_token_json=row["google_token_json"],
            google_email=row["google_email"],
            created_at=row["created_at"],
        )

    def get_user(self, telegram_user_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE telegram_user_id = ?", (telegram_user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def ensure_user(self, telegram_user_id: int, display_name: str) -> User:
        """Return the user, registering them on first contact."""
        existing = self.get_user(telegram_user_id)
        if existing is not None:
            return existing

        now = _now()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO users (telegram_user_id, display_name, created_at) VALUES (?, ?, ?)",
                (telegram_user_id, display_name, now),
            )
        logger.info("User registered: %d '%s'", telegram_user_id, display_name)
        return User(telegram_user_id=telegram_user_id, display_name=display_name, created_at=now)

    def set_google_token(
        self, telegram_user_id: int, token_json: str, email: str | None = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET google_token_json = ?, google_email = ? WHERE telegram_user_id = ?",
                (token_json, email, telegram_user_id),
            )
        logger.info("Google Calendar connected for user %d", telegram_user_id)

    def clear_google_token(self, telegram_user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE users SET google_token_json = NULL, google_email = NULL "
                "WHERE telegram_user_id = ? AND google_token_json IS NOT NULL",
                (telegram_user_id,),
            )
        cleared = cursor.rowcount > 0
        if cleared:
            logger.info("Google Calendar disconnected for user %d", telegram_user_id)
        return cleared


# ---------------------------------------------------------------------------
# Classes
# ---------------------------------------------------------------------------


def _clean(value: str | None) -> str | None:
    """Trim optional text; blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class ClassDB(_SQLiteStore):
    """CRUD for a user's academic classes."""

    @staticmethod
    def _row_to_class(row: sqlite3.Row) -> AcademicClass:
        return AcademicClass(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            code=row["code"],
            instructor=row["instructor"],
            semester=row["semester"],
            academic_year=row["academic_year"],
            created_at=row["created_at"],
        )

    def _find_duplicate(
        self, conn: sqlite3.Connection, user_id: int, name: str, semester: str,
        exclude_id: int | None = None,
    ) -> bool:
        query = "SELECT id FROM classes WHERE user_id = ? AND name = ? AND semester = ?"
        params: list = [user_id, name, semester]
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        return conn.execute(query, params).fetchone() is not None

    def add_class(
        self,
        user_id: int,
        name: str,
        code: str | None = None,
        instructor: str | None = None,
        semester: str | None = None,
        academic_year: str | None = None,
    ) -> AcademicClass:
        """Create a class. A name is required; (name, semester) is unique per user."""
        name = (name or "").strip()
        if not name:
            raise ValueError("Class name is required")
        semester = _clean(semester)

        now = _now()
        with self._connect() as conn:
            if semester and self._find_duplicate(conn, user_id, name, semester):
                raise DuplicateClass(
                    "A class with this name already exists for the selected semester"
                )
            cursor = conn.execute(
                """
                INSERT INTO classes
                    (user_id, name, code, instructor, semester, academic_year, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, name, _clean(code), _clean(instructor), semester,
                 _clean(academic_year), now),
            )
            class_id = cursor.lastrowid

        logger.info("Class added: #%d '%s' for user %d", class_id, name, user_id)
        return AcademicClass(
            id=class_id,
            user_id=user_id,
            name=name,
            code=_clean(code),
            instructor=_clean(instructor),
            semester=semester,
            academic_year=_clean(academic_year),
            created_at=now,
        )

    def get_class(self, class_id: int, user_id: int | None = None) -> AcademicClass | None:
        query = "SELECT * FROM classes WHERE id = ?"
        params: list = [class_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        if row is None:
            return None
        return self._row_to_class(row)

    def list_classes(self, user_id: int) -> list[AcademicClass]:
        """All classes of a user, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM classes WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_class(r) for r in rows]

    def update_class(self, class_id: int, user_id: int, **fields: str | None) -> AcademicClass:
        """Update name/code/instructor/semester/academic_year of a class."""
        allowed = {"name", "code", "instructor", "semester", "academic_year"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown class field(s): {', '.join(sorted(unknown))}")

        current = self.get_class(class_id, user_id=user_id)
        if current is None:
            raise ClassNotFound(f"Class {class_id} not found")

        updates = {k: _clean(v) for k, v in fields.items()}
        if "name" in updates and not updates["name"]:
            raise ValueError("Class name is required")

        name = updates.get("name", current.name)
        semester = updates.get("semester", current.semester)

        with self._connect() as conn:
            if semester and self._find_duplicate(conn, user_id, name, semester, exclude_id=class_id):
                raise DuplicateClass(
                    "A class with this name already exists for the selected semester"
                )
            if updates:
                assignments = ", ".join(f"{k} = ?" for k in updates)
                conn.execute(
                    f"UPDATE classes SET {assignments} WHERE id = ?",
                    (*updates.values(), class_id),
                )

        for key, value in updates.items():
            setattr(current, key, value)
        logger.info("Class #%d updated: %s", class_id, sorted(updates))
        return current

    def delete_class(self, class_id: int, user_id: int) -> bool:
        """Delete a class together with its syllabi and events."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM classes WHERE id = ? AND user_id = ?", (class_id, user_id),
            )
            if cursor.rowcount == 0:
                return False
            conn.execute("DELETE FROM syllabi WHERE class_id = ?", (class_id,))
            conn.execute("DELETE FROM calendar_events WHERE class_id = ?", (class_id,))
        logger.info("Class #%d deleted with its syllabi and events", class_id)
        return True


# ---------------------------------------------------------------------------
# Syllabi
# ---------------------------------------------------------------------------


class SyllabusDB(_SQLiteStore):
    """Uploaded syllabi and their processing status."""

    @staticmethod
    def _row_to_syllabus(row: sqlite3.Row) -> Syllabus:
        return Syllabus(
            id=row["id"],
            class_id=row["class_id"],
            user_id=row["user_id"],
            original_filename=row["original_filename"],
            file_type=row["file_type"],
            file_size=row["file_size"],
            content_text=row["content_text"],
            processing_status=row["processing_status"],
            processing_error=row["processing_error"],
            created_at=row["created_at"],
        )

    def add_syllabus(
        self,
        class_id: int,
        user_id: int,
        original_filename: str,
        file_type: str,
        file_size: int,
        content_text: str | None,
        processing_status: str = "pending",
        processing_error: str | None = None,
    ) -> Syllabus:
        now = _now()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO syllabi
                    (class_id, user_id, original_filename, file_type, file_size,
                     content_text, processing_status, processing_error, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (class_id, user_id, original_filename, file_type, file_size,
                 content_text, processing_status, processing_error, now),
            )
            syllabus_id = cursor.lastrowid

        logger.info("Syllabus added: #%d '%s' for class %d", syllabus_id, original_filename, class_id)
        return Syllabus(
            id=syllabus_id,
            class_id=class_id,
            user_id=user_id,
            original_filename=original_filename,
            file_type=file_type,
            file_size=file_size,
            content_text=content_text,
            processing_status=processing_status,
            processing_error=processing_error,
            created_at=now,
        )

    def get_syllabus(self, syllabus_id: int, class_id: int | None = None) -> Syllabus | None:
        query = "SELECT * FROM syllabi WHERE id = ?"
        params: list = [syllabus_id]
        if class_id is not None:
            query += " AND class_id = ?"
            params.append(class_id)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        if row is None:
            return None
        return self._row_to_syllabus(row)

    def list_syllabi(self, class_id: int) -> list[Syllabus]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM syllabi WHERE class_id = ? ORDER BY created_at DESC, id DESC",
                (class_id,),
            ).fetchall()
        return [self._row_to_syllabus(r) for r in rows]

    def set_status(self, syllabus_id: int, status: str, error: str | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE syllabi SET processing_status = ?, processing_error = ? WHERE id = ?",
                (status, error, syllabus_id),
            )
        logger.info("Syllabus #%d status → %s", syllabus_id, status)


# ---------------------------------------------------------------------------
# Calendar events
# ---------------------------------------------------------------------------

_EVENT_COLUMNS = (
    "syllabus_id", "class_id", "user_id", "title", "description", "event_type",
    "due_date", "due_time", "confidence_score", "source_text", "extraction_method",
    "is_exported", "exported_at", "ics_uid", "google_event_id", "created_at", "updated_at",
)


def _check_event(event: StoredCalendarEvent) -> None:
    """Enforce the stored-event invariants before anything is written."""
    if parse_iso_date(event.due_date) is None:
        raise StorageWriteError(f"Invalid due date {event.due_date!r} for '{event.title}'")
    if event.event_type not in STORED_EVENT_TYPES:
        raise StorageWriteError(f"Invalid event type {event.event_type!r} for '{event.title}'")
    if event.confidence_score is not None and not 0.0 <= event.confidence_score <= 1.0:
        raise StorageWriteError(
            f"Confidence {event.confidence_score} out of range for '{event.title}'"
        )


class EventDB(_SQLiteStore):
    """Calendar events. Batch inserts are all-or-nothing."""

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> StoredCalendarEvent:
        return StoredCalendarEvent(
            id=row["id"],
            syllabus_id=row["syllabus_id"],
            class_id=row["class_id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            event_type=row["event_type"],
            due_date=row["due_date"],
            due_time=row["due_time"],
            confidence_score=row["confidence_score"],
            source_text=row["source_text"],
            extraction_method=row["extraction_method"],
            is_exported=bool(row["is_exported"]),
            exported_at=row["exported_at"],
            ics_uid=row["ics_uid"],
            google_event_id=row["google_event_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def insert_events(self, events: list[StoredCalendarEvent]) -> list[StoredCalendarEvent]:
        """Insert a batch in one transaction and return the rows with ids.

        Raises StorageWriteError if any row is invalid or the write fails;
        in that case nothing from the batch is stored.
        """
        if not events:
            return []

        for event in events:
            _check_event(event)

        now = _now()
        placeholders = ", ".join("?" for _ in _EVENT_COLUMNS)
        sql = f"INSERT INTO calendar_events ({', '.join(_EVENT_COLUMNS)}) VALUES ({placeholders})"

        inserted: list[StoredCalendarEvent] = []
        try:
            with self._connect() as conn:
                for event in events:
                    event.created_at = event.created_at or now
                    event.updated_at = now
                    values = tuple(
                        int(getattr(event, col)) if col == "is_exported" else getattr(event, col)
                        for col in _EVENT_COLUMNS
                    )
                    cursor = conn.execute(sql, values)
                    event.id = cursor.lastrowid
                    inserted.append(event)
        except sqlite3.Error as exc:
            logger.error("Failed to insert calendar events: %s", exc)
            for event in inserted:
                event.id = None
            raise StorageWriteError(f"Failed to insert events: {exc}") from exc

        logger.info("Inserted %d calendar event(s)", len(inserted))
        return inserted

    def get_event(self, event_id: int) -> StoredCalendarEvent | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM calendar_events WHERE id = ?", (event_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    def list_events(
        self,
        user_id: int,
        class_id: int | None = None,
        syllabus_id: int | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[StoredCalendarEvent]:
        """Events of a user ordered by due date, optionally filtered."""
        query = "SELECT * FROM calendar_events WHERE user_id = ?"
        params: list = [user_id]
        if class_id is not None:
            query += " AND class_id = ?"
            params.append(class_id)
        if syllabus_id is not None:
            query += " AND syllabus_id = ?"
            params.append(syllabus_id)
        if start_date is not None:
            query += " AND due_date >= ?"
            params.append(start_date)
        if end_date is not None:
            query += " AND due_date <= ?"
            params.append(end_date)
        query += " ORDER BY due_date, due_time IS NOT NULL, due_time, id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_event(r) for r in rows]

    def mark_exported(self, event_id: int, ics_uid: str, exported_at: str | None = None) -> None:
        """Record an ICS export of an event."""
        exported_at = exported_at or _now()
        with self._connect() as conn:
            conn.execute(
                "UPDATE calendar_events SET is_exported = 1, exported_at = ?, ics_uid = ?, "
                "updated_at = ? WHERE id = ?",
                (exported_at, ics_uid, _now(), event_id),
            )

    def set_google_event_id(self, event_id: int, google_event_id: str) -> None:
        """Record that an event was pushed to Google Calendar."""
        now = _now()
        with self._connect() as conn:
            conn.execute(
                "UPDATE calendar_events SET google_event_id = ?, is_exported = 1, "
                "exported_at = ?, updated_at = ? WHERE id = ?",
                (google_event_id, now, now, event_id),
            )

    def google_event_ids(self, user_id: int) -> set[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT google_event_id FROM calendar_events "
                "WHERE user_id = ? AND google_event_id IS NOT NULL",
                (user_id,),
            ).fetchall()
        return {r["google_event_id"] for r in rows}

    def delete_event(self, event_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM calendar_events WHERE id = ? AND user_id = ?", (event_id, user_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Event #%d deleted", event_id)
        return deleted
