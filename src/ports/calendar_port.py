"""Calendar port — abstract interface for third-party calendar operations.

Core modules depend on this protocol, never on a specific provider.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import StoredCalendarEvent


class CalendarError(Exception):
    """Raised when any calendar provider operation fails."""


class CalendarPort(Protocol):
    """Abstract calendar interface used by core modules.

    Remote events are returned as simplified dicts with keys:
    id, summary, description, date (YYYY-MM-DD), time (HH:MM or None).
    """

    async def list_calendars(self) -> list[dict]: ...

    async def add_event(
        self, event: StoredCalendarEvent, calendar_id: str = "primary"
    ) -> dict: ...

    async def find_events(
        self, start_date: str, end_date: str, calendar_id: str = "primary"
    ) -> list[dict]: ...

    async def delete_event(
        self, event_id: str, calendar_id: str = "primary"
    ) -> None: ...
