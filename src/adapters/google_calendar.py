"""Google Calendar adapter — implements CalendarPort for Google Calendar API.

All Google-specific logic lives here. Core modules never import this directly;
they depend on the CalendarPort protocol.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from src.config import settings
from src.core.calendar_grid import parse_due_date, parse_due_time
from src.data.models import StoredCalendarEvent
from src.integrations.google_auth import get_calendar_service_for_user
from src.ports.calendar_port import CalendarError

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(hours=1)


def _build_event_body(event: StoredCalendarEvent, timezone: str) -> dict:
    """Construct a Google Calendar API event body from a stored event.

    Events without a time become all-day events (end date is exclusive).
    """
    day = parse_due_date(event.due_date)
    body: dict = {
        "summary": event.title,
        "description": event.description or "",
    }
    if event.due_time:
        start_dt = datetime.combine(day, parse_due_time(event.due_time))
        end_dt = start_dt + DEFAULT_DURATION
        body["start"] = {"dateTime": start_dt.isoformat(), "timeZone": timezone}
        body["end"] = {"dateTime": end_dt.isoformat(), "timeZone": timezone}
    else:
        body["start"] = {"date": day.isoformat()}
        body["end"] = {"date": (day + timedelta(days=1)).isoformat()}

    if event.id is not None:
        body["extendedProperties"] = {
            "private": {"syllabusCalendarEventId": str(event.id)}
        }
    return body


def _window_bound(day: str, timezone: str, end: bool = False) -> str:
    """RFC3339 start or end of a wall-clock day in the given zone."""
    clock = time(23, 59, 59) if end else time.min
    return datetime.combine(date.fromisoformat(day), clock, tzinfo=ZoneInfo(timezone)).isoformat()


def _simplify_event(item: dict) -> dict | None:
    """Reduce an API event resource to {id, summary, description, date, time}.

    The wall-clock date and time are read straight from the string, so the
    event keeps the day it was written for. Returns None when there is no start.
    """
    start = item.get("start", {})
    if start.get("dateTime"):
        raw = start["dateTime"]
        day, clock = raw[:10], raw[11:16]
    elif start.get("date"):
        day, clock = start["date"][:10], None
    else:
        return None
    return {
        "id": item.get("id", ""),
        "summary": item.get("summary", "(no title)"),
        "description": item.get("description", ""),
        "date": day,
        "time": clock,
    }


class GoogleCalendarAdapter:
    """Google Calendar implementation of CalendarPort, bound to one user's token."""

    def __init__(self, token_json: str, timezone: str | None = None) -> None:
        self._token_json = token_json
        self._timezone = timezone or settings.TIMEZONE
        self._service = None

    def _get_service(self):
        if self._service is None:
            self._service = get_calendar_service_for_user(self._token_json)
        return self._service

    async def list_calendars(self) -> list[dict]:
        try:
            service = self._get_service()
            result = await asyncio.to_thread(service.calendarList().list().execute)
        except Exception as exc:
            logger.error("Failed to list calendars: %s", exc)
            raise CalendarError(f"Failed to list calendars: {exc}") from exc

        calendars = [
            {
                "id": item.get("id", ""),
                "summary": item.get("summary", "(untitled)"),
                "description": item.get("description", ""),
                "primary": bool(item.get("primary", False)),
                "access_role": item.get("accessRole", ""),
            }
            for item in result.get("items", [])
        ]
        logger.info("Found %d calendar(s)", len(calendars))
        return calendars

    async def primary_email(self) -> str | None:
        """The primary calendar's id, which is the account's email address."""
        for cal in await self.list_calendars():
            if cal["primary"]:
                return cal["id"]
        return None

    async def add_event(
        self, event: StoredCalendarEvent, calendar_id: str = "primary"
    ) -> dict:
        try:
            event_body = _build_event_body(event, self._timezone)
        except ValueError as exc:
            raise CalendarError(f"Invalid event date/time: {exc}") from exc

        try:
            service = self._get_service()
            created = await asyncio.to_thread(
                service.events().insert(calendarId=calendar_id, body=event_body).execute
            )
        except Exception as exc:
            logger.error("Google Calendar API error: %s", exc)
            raise CalendarError(f"Failed to create event: {exc}") from exc

        logger.info(
            "Event created: '%s' on %s — %s",
            event.title,
            event.due_date,
            created.get("htmlLink", ""),
        )
        return created

    async def find_events(
        self, start_date: str, end_date: str, calendar_id: str = "primary"
    ) -> list[dict]:
        """Events whose start falls in [start_date, end_date], inclusive."""
        try:
            time_min = _window_bound(start_date, self._timezone)
            time_max = _window_bound(end_date, self._timezone, end=True)
        except (ValueError, KeyError) as exc:
            raise CalendarError(f"Invalid date range: {exc}") from exc

        items: list[dict] = []
        page_token = None
        try:
            service = self._get_service()
            while True:
                result = await asyncio.to_thread(
                    service.events()
                    .list(
                        calendarId=calendar_id,
                        timeMin=time_min,
                        timeMax=time_max,
                        timeZone=self._timezone,
                        singleEvents=True,
                        orderBy="startTime",
                        pageToken=page_token,
                    )
                    .execute
                )
                items.extend(result.get("items", []))
                page_token = result.get("nextPageToken")
                if not page_token:
                    break
        except Exception as exc:
            logger.error(
                "Failed to find events between %s and %s: %s",
                start_date, end_date, exc,
            )
            raise CalendarError(f"Failed to find events: {exc}") from exc

        events = [e for e in (_simplify_event(item) for item in items) if e]
        logger.info(
            "Found %d event(s) between %s and %s", len(events), start_date, end_date
        )
        return events

    async def delete_event(self, event_id: str, calendar_id: str = "primary") -> None:
        try:
            service = self._get_service()
            await asyncio.to_thread(
                service.events().delete(calendarId=calendar_id, eventId=event_id).execute
            )
            logger.info("Event with ID %s deleted successfully.", event_id)
        except Exception as exc:
            logger.error("Failed to delete event with ID %s: %s", event_id, exc)
            raise CalendarError(f"Failed to delete event: {exc}") from exc
