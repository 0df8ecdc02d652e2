"""
Syllabus Calendar — ICS export.

Builds an iCalendar file from stored events so they can be imported into
any calendar app, and records the export on each event.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from icalendar import Calendar, Event

from src.core.calendar_grid import parse_due_date, parse_due_time
from src.data.models import StoredCalendarEvent

if TYPE_CHECKING:
    from src.data.db import EventDB

logger = logging.getLogger(__name__)

PRODID = "-//Syllabus Calendar//Syllabus Calendar//EN"


def event_uid(event: StoredCalendarEvent) -> str:
    """Stable UID: reuse the stored one so re-exports update instead of duplicating."""
    if event.ics_uid:
        return event.ics_uid
    return f"{uuid.uuid4()}@syllabus-calendar"


def _build_vevent(event: StoredCalendarEvent, uid: str, stamp: datetime) -> Event:
    vevent = Event()
    vevent.add("uid", uid)
    vevent.add("dtstamp", stamp)

    day = parse_due_date(event.due_date)
    if event.due_time:
        # Floating local time: shown at the written hour in every timezone
        vevent.add("dtstart", datetime.combine(day, parse_due_time(event.due_time)))
    else:
        vevent.add("dtstart", day)

    vevent.add("summary", event.title)
    vevent.add("description", event.description or event.title)
    vevent.add("categories", [event.event_type])
    return vevent


def generate_ics(
    events: list[StoredCalendarEvent],
    calendar_name: str = "Syllabus Calendar",
) -> tuple[bytes, dict[int, str]]:
    """Render events as an .ics payload.

    Returns (ics_bytes, uids) where uids maps event id → UID used.
    Events with unparseable dates are skipped.
    """
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("x-wr-calname", calendar_name)
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")

    stamp = datetime.now(timezone.utc)
    uids: dict[int, str] = {}
    for event in events:
        uid = event_uid(event)
        try:
            cal.add_component(_build_vevent(event, uid, stamp))
        except ValueError as exc:
            logger.warning("Skipping event '%s' in ICS export: %s", event.title, exc)
            continue
        if event.id is not None:
            uids[event.id] = uid

    return cal.to_ical(), uids


def export_events(
    events: list[StoredCalendarEvent],
    event_db: EventDB,
    calendar_name: str = "Syllabus Calendar",
) -> bytes:
    """Generate the .ics file and mark every included event as exported."""
    ics_bytes, uids = generate_ics(events, calendar_name)
    exported_at = datetime.now().isoformat(timespec="seconds")
    for event_id, uid in uids.items():
        event_db.mark_exported(event_id, uid, exported_at)

    logger.info("Exported %d event(s) to ICS", len(uids))
    return ics_bytes
