"""
Syllabus Calendar — Google Calendar synchronization.

Pushes stored events that have not been sent yet to a user's calendar and
optionally pulls remote events back into a class. Works against any
CalendarPort; the bot wires in the Google adapter for the current user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING

from src.core.errors import EventNotFound
from src.data.models import StoredCalendarEvent, User
from src.ports.calendar_port import CalendarError, CalendarPort

if TYPE_CHECKING:
    from src.data.db import EventDB, UserDB

logger = logging.getLogger(__name__)

DEFAULT_PULL_DAYS = 180


@dataclass
class SyncOptions:
    calendar_id: str = "primary"
    class_id: int | None = None
    start_date: str | None = None
    end_date: str | None = None
    pull: bool = False


@dataclass
class SyncResult:
    pushed: int = 0
    pulled: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        text = f"Pushed {self.pushed} event(s), pulled {self.pulled} event(s)."
        if self.errors:
            text += f" {len(self.errors)} event(s) failed."
        return text


# ---------------------------------------------------------------------------
# Connection state
# ---------------------------------------------------------------------------


def connection_status(user: User | None) -> dict:
    if user is None or not user.google_connected:
        return {"connected": False, "email": None}
    return {"connected": True, "email": user.google_email}


def disconnect(user_db: UserDB, user_id: int) -> bool:
    """Forget the user's Google token. Returns False if none was stored."""
    return user_db.clear_google_token(user_id)


# ---------------------------------------------------------------------------
# Push / pull
# ---------------------------------------------------------------------------


def _pull_window(options: SyncOptions) -> tuple[str, str]:
    start = options.start_date or date.today().isoformat()
    end = options.end_date or (
        date.fromisoformat(start) + timedelta(days=DEFAULT_PULL_DAYS)
    ).isoformat()
    return start, end


async def push_events(
    calendar: CalendarPort,
    event_db: EventDB,
    user_id: int,
    options: SyncOptions,
    result: SyncResult,
) -> None:
    pending = [
        e for e in event_db.list_events(
            user_id,
            class_id=options.class_id,
            start_date=options.start_date,
            end_date=options.end_date,
        )
        if not e.google_event_id
    ]
    for event in pending:
        try:
            created = await calendar.add_event(event, options.calendar_id)
        except CalendarError as exc:
            logger.warning("Push of event #%s failed: %s", event.id, exc)
            result.errors.append(f"{event.title}: {exc}")
            continue
        event_db.set_google_event_id(event.id, created.get("id", ""))
        result.pushed += 1


async def pull_events(
    calendar: CalendarPort,
    event_db: EventDB,
    user_id: int,
    options: SyncOptions,
    extraction_method: str,
) -> int:
    """Store remote events not seen before into `options.class_id`."""
    if options.class_id is None:
        raise ValueError("A class is required to pull events")

    start, end = _pull_window(options)
    remote = await calendar.find_events(start, end, options.calendar_id)
    known = event_db.google_event_ids(user_id)

    new_events: list[StoredCalendarEvent] = []
    for item in remote:
        if not item.get("id") or item["id"] in known:
            continue
        known.add(item["id"])
        new_events.append(
            StoredCalendarEvent(
                class_id=options.class_id,
                user_id=user_id,
                title=item.get("summary") or "(no title)",
                description=item.get("description") or None,
                event_type="google_calendar",
                due_date=item["date"],
                due_time=item.get("time"),
                extraction_method=extraction_method,
                google_event_id=item["id"],
            )
        )

    saved = event_db.insert_events(new_events)
    logger.info(
        "Pulled %d new event(s) of %d remote between %s and %s",
        len(saved), len(remote), start, end,
    )
    return len(saved)


async def sync_events(
    calendar: CalendarPort,
    event_db: EventDB,
    user_id: int,
    options: SyncOptions | None = None,
) -> SyncResult:
    """Push unsent events, then pull remote ones when `options.pull` is set."""
    options = options or SyncOptions()
    result = SyncResult()

    await push_events(calendar, event_db, user_id, options, result)
    if options.pull:
        result.pulled = await pull_events(
            calendar, event_db, user_id, options, "google_calendar_sync"
        )

    logger.info("Sync for user %d: %s", user_id, result.message)
    return result


async def import_events(
    calendar: CalendarPort,
    event_db: EventDB,
    user_id: int,
    options: SyncOptions,
) -> SyncResult:
    """Pull only."""
    pulled = await pull_events(
        calendar, event_db, user_id, options, "google_calendar_import"
    )
    return SyncResult(pulled=pulled)


# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------


@dataclass
class RemovalResult:
    event: StoredCalendarEvent
    remote_deleted: bool = False
    remote_error: str | None = None

    @property
    def message(self) -> str:
        text = f"Deleted '{self.event.title}'."
        if self.remote_deleted:
            text += " It was also removed from Google Calendar."
        elif self.remote_error:
            text += f" Its Google Calendar copy could not be removed: {self.remote_error}"
        elif self.event.google_event_id:
            text += " Its Google Calendar copy was left in place."
        return text


async def remove_event(
    event_db: EventDB,
    user_id: int,
    event_id: int,
    calendar: CalendarPort | None = None,
    calendar_id: str = "primary",
) -> RemovalResult:
    """Delete a stored event, and its pushed copy when a calendar is given.

    The local row is deleted even if the remote delete fails.
    Raises EventNotFound for unknown ids or events of other users.
    """
    event = event_db.get_event(event_id)
    if event is None or event.user_id != user_id:
        raise EventNotFound(f"Event #{event_id} not found")

    result = RemovalResult(event=event)
    if event.google_event_id and calendar is not None:
        try:
            await calendar.delete_event(event.google_event_id, calendar_id)
            result.remote_deleted = True
        except CalendarError as exc:
            logger.warning("Remote delete of event #%d failed: %s", event_id, exc)
            result.remote_error = str(exc)

    event_db.delete_event(event_id, user_id)
    return result
