"""
Syllabus Calendar — Validation and deduplication of candidate events.

Both functions are pure, stable filters: surviving events keep their
input order and are never modified.
"""

from __future__ import annotations

import logging
import re
from datetime import date

from src.core.extractor import CandidateEvent

logger = logging.getLogger(__name__)

# "reading" is a valid prompt category but is not accepted here.
VALID_EVENT_TYPES = frozenset({"assignment", "exam", "quiz", "project", "deadline"})

_ISO_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def parse_iso_date(value: str | None) -> date | None:
    """Parse a plain YYYY-MM-DD string, or None if it is not a real calendar date.

    Only the exact dashed form is accepted, so every stored date splits
    cleanly on "-" and compares correctly as a string.
    """
    if not isinstance(value, str) or not _ISO_DATE_RE.fullmatch(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _rejection_reason(event: CandidateEvent) -> str | None:
    if not event.title or not event.title.strip():
        return "missing title"
    if parse_iso_date(event.due_date) is None:
        return f"invalid due date {event.due_date!r}"
    if event.event_type not in VALID_EVENT_TYPES:
        return f"unsupported event type {event.event_type!r}"
    if event.confidence_score is not None and not 0.0 <= event.confidence_score <= 1.0:
        return f"confidence {event.confidence_score} out of range"
    return None


def validate_events(events: list[CandidateEvent]) -> list[CandidateEvent]:
    """Drop malformed events."""
    valid: list[CandidateEvent] = []
    for event in events:
        reason = _rejection_reason(event)
        if reason is not None:
            logger.debug("Rejected event '%s': %s", event.title, reason)
            continue
        valid.append(event)

    if len(valid) != len(events):
        logger.info("Validation kept %d of %d event(s)", len(valid), len(events))
    return valid


def dedupe_key(event: CandidateEvent) -> str:
    return f"{event.title.lower()}-{event.due_date}"


def deduplicate_events(events: list[CandidateEvent]) -> list[CandidateEvent]:
    """Keep the first event for each (lowercased title, due date) pair.

    Exact match only: "Midterm" and "Midterm." are different events.
    """
    seen: set[str] = set()
    unique: list[CandidateEvent] = []
    for event in events:
        key = dedupe_key(event)
        if key in seen:
            continue
        seen.add(key)
        unique.append(event)
    return unique
