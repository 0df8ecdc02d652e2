"""Tests for src.core.calendar_sync — push/pull against a mocked CalendarPort."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from src.core.calendar_sync import (
    SyncOptions,
    SyncResult,
    connection_status,
    disconnect,
    import_events,
    remove_event,
    sync_events,
)
from src.core.errors import EventNotFound
from src.data.models import User
from src.ports.calendar_port import CalendarError


def _make_calendar(remote=None):
    calendar = MagicMock()
    counter = iter(range(1, 1000))
    calendar.add_event = AsyncMock(side_effect=lambda event, calendar_id="primary": {"id": f"g-{next(counter)}"})
    calendar.find_events = AsyncMock(return_value=remote or [])
    return calendar


class TestConnectionStatus:
    def test_not_registered(self):
        assert connection_status(None) == {"connected": False, "email": None}

    def test_connected(self):
        user = User(telegram_user_id=1, display_name="A", google_token_json="{}", google_email="a@x.com")
        assert connection_status(user) == {"connected": True, "email": "a@x.com"}

    def test_disconnect(self, user_db):
        user_db.ensure_user(12345, "A")
        user_db.set_google_token(12345, "{}", "a@x.com")
        assert disconnect(user_db, 12345) is True
        assert connection_status(user_db.get_user(12345))["connected"] is False


class TestSyncPush:
    @pytest.mark.asyncio
    async def test_pushes_only_unsent(self, event_db, make_event):
        sent, fresh = event_db.insert_events([make_event(title="sent"), make_event(title="fresh")])
        event_db.set_google_event_id(sent.id, "g-old")
        calendar = _make_calendar()

        result = await sync_events(calendar, event_db, 12345, SyncOptions(calendar_id="school"))

        assert result.pushed == 1
        assert result.pulled == 0
        pushed_event, calendar_id = calendar.add_event.call_args.args
        assert pushed_event.title == "fresh"
        assert calendar_id == "school"
        stored = event_db.get_event(fresh.id)
        assert stored.google_event_id == "g-1"
        assert stored.is_exported is True

    @pytest.mark.asyncio
    async def test_second_sync_pushes_nothing(self, event_db, make_event):
        event_db.insert_events([make_event()])
        calendar = _make_calendar()
        await sync_events(calendar, event_db, 12345)
        result = await sync_events(calendar, event_db, 12345)
        assert result.pushed == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_batch(self, event_db, make_event):
        event_db.insert_events([make_event(title="a"), make_event(title="b")])
        calendar = MagicMock()
        calendar.add_event = AsyncMock(side_effect=[CalendarError("quota"), {"id": "g-2"}])

        result = await sync_events(calendar, event_db, 12345)

        assert result.pushed == 1
        assert result.errors == ["a: quota"]
        assert "1 event(s) failed" in result.message

    @pytest.mark.asyncio
    async def test_class_and_range_filter(self, event_db, make_event):
        event_db.insert_events([
            make_event(title="in", class_id=1, due_date="2024-09-10"),
            make_event(title="other class", class_id=2, due_date="2024-09-10"),
            make_event(title="too late", class_id=1, due_date="2024-12-10"),
        ])
        calendar = _make_calendar()
        options = SyncOptions(class_id=1, start_date="2024-09-01", end_date="2024-09-30")
        result = await sync_events(calendar, event_db, 12345, options)
        assert result.pushed == 1
        assert calendar.add_event.call_args.args[0].title == "in"


class TestSyncPull:
    _REMOTE = [
        {"id": "r-1", "summary": "Office hours", "description": "", "date": "2024-09-03", "time": "15:00"},
        {"id": "r-2", "summary": "", "description": "Bring laptop", "date": "2024-09-04", "time": None},
    ]

    @pytest.mark.asyncio
    async def test_pull_stores_new_remote_events(self, event_db):
        calendar = _make_calendar(self._REMOTE)
        options = SyncOptions(class_id=1, start_date="2024-09-01", end_date="2024-09-30", pull=True)

        result = await sync_events(calendar, event_db, 12345, options)

        assert result.pulled == 2
        calendar.find_events.assert_awaited_once_with("2024-09-01", "2024-09-30", "primary")
        stored = event_db.list_events(12345)
        assert {e.event_type for e in stored} == {"google_calendar"}
        assert {e.extraction_method for e in stored} == {"google_calendar_sync"}
        assert stored[0].due_time == "15:00"
        assert stored[1].title == "(no title)"
        assert stored[1].description == "Bring laptop"

    @pytest.mark.asyncio
    async def test_pulled_events_are_not_pushed_back(self, event_db):
        calendar = _make_calendar(self._REMOTE)
        options = SyncOptions(class_id=1, start_date="2024-09-01", end_date="2024-09-30", pull=True)
        await sync_events(calendar, event_db, 12345, options)
        result = await sync_events(calendar, event_db, 12345, options)
        assert result.pushed == 0
        assert result.pulled == 0

    @pytest.mark.asyncio
    async def test_pull_requires_class(self, event_db):
        with pytest.raises(ValueError, match="class is required"):
            await sync_events(_make_calendar(), event_db, 12345, SyncOptions(pull=True))

    @pytest.mark.asyncio
    async def test_pull_calendar_error_propagates(self, event_db):
        calendar = _make_calendar()
        calendar.find_events.side_effect = CalendarError("Failed to find events")
        with pytest.raises(CalendarError):
            await sync_events(calendar, event_db, 12345, SyncOptions(class_id=1, pull=True))

    @pytest.mark.asyncio
    async def test_import_is_pull_only(self, event_db, make_event):
        event_db.insert_events([make_event()])
        calendar = _make_calendar(self._REMOTE)

        result = await import_events(
            calendar, event_db, 12345, SyncOptions(class_id=1, start_date="2024-09-01"),
        )

        assert isinstance(result, SyncResult)
        assert result.pulled == 2
        assert result.pushed == 0
        calendar.add_event.assert_not_called()
        start, end, _ = calendar.find_events.call_args.args
        assert (start, end) == ("2024-09-01", "2025-02-28")
        imported = [e for e in event_db.list_events(12345) if e.event_type == "google_calendar"]
        assert {e.extraction_method for e in imported} == {"google_calendar_import"}


class TestRemoveEvent:
    @pytest.mark.asyncio
    async def test_unknown_or_foreign_event(self, event_db, make_event):
        saved = event_db.insert_events([make_event()])[0]
        with pytest.raises(EventNotFound):
            await remove_event(event_db, 12345, saved.id + 100)
        with pytest.raises(EventNotFound):
            await remove_event(event_db, 999, saved.id)
        assert event_db.get_event(saved.id) is not None

    @pytest.mark.asyncio
    async def test_unpushed_event_skips_calendar(self, event_db, make_event):
        saved = event_db.insert_events([make_event(title="Essay")])[0]
        calendar = _make_calendar()
        calendar.delete_event = AsyncMock()

        result = await remove_event(event_db, 12345, saved.id, calendar)

        calendar.delete_event.assert_not_called()
        assert result.message == "Deleted 'Essay'."
        assert event_db.get_event(saved.id) is None

    @pytest.mark.asyncio
    async def test_pushed_event_deleted_remotely(self, event_db, make_event):
        saved = event_db.insert_events([make_event(title="Essay")])[0]
        event_db.set_google_event_id(saved.id, "g-1")
        calendar = _make_calendar()
        calendar.delete_event = AsyncMock()

        result = await remove_event(event_db, 12345, saved.id, calendar)

        calendar.delete_event.assert_awaited_once_with("g-1", "primary")
        assert result.remote_deleted is True
        assert event_db.get_event(saved.id) is None

    @pytest.mark.asyncio
    async def test_remote_failure_still_deletes_locally(self, event_db, make_event):
        saved = event_db.insert_events([make_event(title="Essay")])[0]
        event_db.set_google_event_id(saved.id, "g-1")
        calendar = _make_calendar()
        calendar.delete_event = AsyncMock(side_effect=CalendarError("Failed to delete event: 410"))

        result = await remove_event(event_db, 12345, saved.id, calendar)

        assert result.remote_deleted is False
        assert "could not be removed: Failed to delete event: 410" in result.message
        assert event_db.get_event(saved.id) is None

    @pytest.mark.asyncio
    async def test_pushed_event_without_calendar(self, event_db, make_event):
        saved = event_db.insert_events([make_event(title="Essay")])[0]
        event_db.set_google_event_id(saved.id, "g-1")
        result = await remove_event(event_db, 12345, saved.id)
        assert result.message == "Deleted 'Essay'. Its Google Calendar copy was left in place."
