"""
Syllabus Calendar — Syllabus processing pipeline.

UI-agnostic entry points that run

    text acquisition → extraction → validation → deduplication → storage

for a fresh upload or a stored syllabus, and report how many events were
saved. Extraction never fails the pipeline (no events is a valid outcome);
unsupported documents, unreadable documents and storage failures do.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from src.core.errors import (
    ClassNotFound,
    EmptySyllabus,
    SyllabusBusy,
    SyllabusNotFound,
    UnsupportedDocumentType,
)
from src.core.extractor import CandidateEvent, extract_events
from src.core.text_extraction import extract_text_async, is_supported
from src.core.validation import deduplicate_events, validate_events
from src.data.models import StoredCalendarEvent, Syllabus

if TYPE_CHECKING:
    from src.core.llm import LLMConfig
    from src.data.db import ClassDB, EventDB, SyllabusDB

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Outcome of one pipeline run."""

    saved_count: int
    events: list[CandidateEvent] = field(default_factory=list)
    saved: list[StoredCalendarEvent] = field(default_factory=list)
    syllabus: Syllabus | None = None
    processing_time_ms: int = 0

    @property
    def message(self) -> str:
        if self.saved_count == 0:
            return "No calendar events were found in this syllabus."
        noun = "event" if self.saved_count == 1 else "events"
        return f"Extracted and saved {self.saved_count} {noun}."


@dataclass
class SyllabusStatus:
    status: str
    error: str | None = None
    events: list[StoredCalendarEvent] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Persistence adapter
# ---------------------------------------------------------------------------


_DUE_TIME_RE = re.compile(r"([01][0-9]|2[0-3]):([0-5][0-9])(:[0-5][0-9])?")


def normalize_due_time(value: str | None) -> str | None:
    """Return "HH:MM" for a 24-hour time, or None for anything else."""
    if not value:
        return None
    match = _DUE_TIME_RE.fullmatch(value)
    if match is None:
        logger.warning("Dropping unrecognised due time %r", value)
        return None
    return f"{match.group(1)}:{match.group(2)}"


def to_stored_event(
    event: CandidateEvent,
    class_id: int,
    user_id: int,
    syllabus_id: int | None = None,
    extraction_method: str = "llm",
) -> StoredCalendarEvent:
    """Map a validated event plus ownership into the stored shape."""
    return StoredCalendarEvent(
        syllabus_id=syllabus_id,
        class_id=class_id,
        user_id=user_id,
        title=event.title,
        description=event.description,
        event_type=event.event_type,
        due_date=event.due_date,
        due_time=normalize_due_time(event.due_time),
        confidence_score=event.confidence_score,
        source_text=event.source_text,
        extraction_method=extraction_method,
        is_exported=False,
        exported_at=None,
        ics_uid=None,
    )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


async def process_text(
    text: str,
    class_id: int,
    user_id: int,
    event_db: EventDB,
    llm_config: LLMConfig,
    syllabus_id: int | None = None,
    extraction_method: str = "llm",
) -> ProcessingResult:
    """Extract, validate, dedupe and store the events found in `text`.

    Raises StorageWriteError if the batch could not be saved.
    """
    started = time.monotonic()

    candidates = await extract_events(text, llm_config)
    unique = deduplicate_events(validate_events(candidates))

    stored = [
        to_stored_event(e, class_id, user_id, syllabus_id, extraction_method)
        for e in unique
    ]
    saved = event_db.insert_events(stored)
    if not saved:
        logger.info("No calendar events to insert for class %d", class_id)

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "Processed syllabus text for class %d: %d candidate(s), %d saved in %d ms",
        class_id, len(candidates), len(saved), elapsed_ms,
    )
    return ProcessingResult(
        saved_count=len(saved),
        events=unique,
        saved=saved,
        processing_time_ms=elapsed_ms,
    )


async def process_upload(
    content: bytes,
    mime_type: str | None,
    file_name: str,
    class_id: int,
    user_id: int,
    class_db: ClassDB,
    syllabus_db: SyllabusDB,
    event_db: EventDB,
    llm_config: LLMConfig,
) -> ProcessingResult:
    """Upload workflow: read the PDF, record the syllabus, extract and save events.

    Non-PDF uploads are rejected before anything else happens.
    """
    if not is_supported(mime_type, file_name):
        raise UnsupportedDocumentType(
            "Only PDF files are supported for automatic processing"
        )
    if class_db.get_class(class_id, user_id=user_id) is None:
        raise ClassNotFound(f"Class {class_id} not found")

    text = await extract_text_async(content, mime_type, file_name)

    syllabus = syllabus_db.add_syllabus(
        class_id=class_id,
        user_id=user_id,
        original_filename=file_name,
        file_type=mime_type or "application/pdf",
        file_size=len(content),
        content_text=text,
        processing_status="processing",
    )

    try:
        result = await process_text(
            text, class_id, user_id, event_db, llm_config,
            syllabus_id=syllabus.id, extraction_method="upload_workflow",
        )
    except Exception as exc:
        syllabus_db.set_status(syllabus.id, "failed", str(exc))
        raise

    syllabus_db.set_status(syllabus.id, "completed")
    syllabus.processing_status = "completed"
    result.syllabus = syllabus
    return result


async def reprocess_syllabus(
    syllabus_id: int,
    class_id: int,
    user_id: int,
    syllabus_db: SyllabusDB,
    event_db: EventDB,
    llm_config: LLMConfig,
) -> ProcessingResult:
    """Run extraction again over a stored syllabus' text."""
    syllabus = syllabus_db.get_syllabus(syllabus_id, class_id=class_id)
    if syllabus is None or syllabus.user_id != user_id:
        raise SyllabusNotFound("Syllabus not found")
    if syllabus.processing_status == "processing":
        raise SyllabusBusy("Syllabus is already being processed")
    if not syllabus.content_text:
        raise EmptySyllabus("No content to process")

    syllabus_db.set_status(syllabus_id, "processing")
    try:
        result = await process_text(
            syllabus.content_text, class_id, user_id, event_db, llm_config,
            syllabus_id=syllabus_id, extraction_method="llm",
        )
    except Exception as exc:
        logger.error("Processing of syllabus #%d failed: %s", syllabus_id, exc)
        syllabus_db.set_status(syllabus_id, "failed", str(exc))
        raise

    syllabus_db.set_status(syllabus_id, "completed")
    syllabus.processing_status = "completed"
    syllabus.processing_error = None
    result.syllabus = syllabus
    return result


def syllabus_status(
    syllabus_id: int, user_id: int, syllabus_db: SyllabusDB, event_db: EventDB,
) -> SyllabusStatus:
    """Processing status of a syllabus, with its events once completed."""
    syllabus = syllabus_db.get_syllabus(syllabus_id)
    if syllabus is None or syllabus.user_id != user_id:
        raise SyllabusNotFound("Syllabus not found")

    if syllabus.processing_status == "completed":
        events = event_db.list_events(user_id, syllabus_id=syllabus_id)
        return SyllabusStatus(status="completed", events=events)
    return SyllabusStatus(status=syllabus.processing_status, error=syllabus.processing_error)
