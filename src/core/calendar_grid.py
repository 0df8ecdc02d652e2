"""
Syllabus Calendar — Calendar views.

Builds the month grid and list views from a flat list of stored events.
Dates and times are parsed by splitting "YYYY-MM-DD" / "HH:MM" strings,
never through a datetime with a timezone, so a due date always lands on
the day it was written for.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta

from src.data.models import StoredCalendarEvent

logger = logging.getLogger(__name__)

GRID_DAYS = 42  # 6 weeks x 7 days

_EVENT_TYPE_LABELS = {
    "assignment": "Assignment",
    "exam": "Exam",
    "quiz": "Quiz",
    "project": "Project",
    "reading": "Reading",
    "deadline": "Deadline",
    "google_calendar": "Google",
}

_EVENT_TYPE_ICONS = {
    "assignment": "📝",
    "exam": "🧪",
    "quiz": "❓",
    "project": "📦",
    "reading": "📖",
    "deadline": "⏰",
    "google_calendar": "📅",
}


@dataclass
class CalendarDay:
    """One cell of the month grid."""

    date: date
    events: list[StoredCalendarEvent] = field(default_factory=list)
    is_today: bool = False
    is_current_month: bool = False


# ---------------------------------------------------------------------------
# Parsing and formatting
# ---------------------------------------------------------------------------


def parse_due_date(value: str) -> date:
    """Split "YYYY-MM-DD" into a date. Raises ValueError on bad input."""
    year, month, day = (int(part) for part in value.strip()[:10].split("-"))
    return date(year, month, day)


def parse_due_time(value: str) -> time:
    """Split "HH:MM" or "HH:MM:SS" into a time. Raises ValueError on bad input."""
    parts = [int(part) for part in value.strip().split(":")]
    if len(parts) < 2:
        raise ValueError(f"Invalid time: {value!r}")
    return time(parts[0], parts[1])


def format_date(value: str) -> str:
    """"2024-09-05" → "9/5/2024"."""
    d = parse_due_date(value)
    return f"{d.month}/{d.day}/{d.year}"


def format_time(value: str | None) -> str:
    """Keep HH:MM only."""
    if not value:
        return ""
    return value[:5]


def event_type_label(event_type: str) -> str:
    return _EVENT_TYPE_LABELS.get(event_type, event_type)


def confidence_level(score: float | None) -> str:
    if score is None:
        return ""
    if score >= 0.8:
        return "high"
    if score >= 0.6:
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# Month grid
# ---------------------------------------------------------------------------


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move `delta` months forward (negative for backward)."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def build_month_grid(
    year: int,
    month: int,
    events: list[StoredCalendarEvent],
    today: date | None = None,
) -> list[CalendarDay]:
    """Six Sunday-first weeks covering the month, each day with its events."""
    today = today or date.today()
    first = date(year, month, 1)
    # date.weekday(): Monday=0 … Sunday=6; shift so the grid starts on Sunday
    start = first - timedelta(days=(first.weekday() + 1) % 7)

    by_date: dict[date, list[StoredCalendarEvent]] = {}
    for event in events:
        try:
            by_date.setdefault(parse_due_date(event.due_date), []).append(event)
        except ValueError:
            logger.warning("Skipping event #%s with bad due date %r", event.id, event.due_date)

    days: list[CalendarDay] = []
    for offset in range(GRID_DAYS):
        current = start + timedelta(days=offset)
        days.append(
            CalendarDay(
                date=current,
                events=by_date.get(current, []),
                is_today=current == today,
                is_current_month=current.month == month,
            )
        )
    return days


# ---------------------------------------------------------------------------
# Text renderers (used by the bot)
# ---------------------------------------------------------------------------


def render_month(year: int, month: int, days: list[CalendarDay]) -> str:
    """Monospace month grid. Days with events are marked with '*', today with []."""
    lines = [f"{calendar.month_name[month]} {year}".center(28), " Su  Mo  Tu  We  Th  Fr  Sa"]
    for week_start in range(0, len(days), 7):
        cells = []
        for day in days[week_start:week_start + 7]:
            if not day.is_current_month:
                cells.append("    ")
                continue
            marker = "*" if day.events else " "
            label = f"{day.date.day:>2}{marker}"
            cells.append(f"[{label[:-1]}]" if day.is_today else f" {label}")
        lines.append("".join(cells).rstrip())
    return "\n".join(lines)


def render_event_line(event: StoredCalendarEvent) -> str:
    icon = _EVENT_TYPE_ICONS.get(event.event_type, "•")
    when = format_date(event.due_date)
    if event.due_time:
        when += f" {format_time(event.due_time)}"
    line = f"{icon} {when} — {event.title} ({event_type_label(event.event_type)})"
    if event.id is not None:
        line += f" #{event.id}"
    return line


def render_event_list(events: list[StoredCalendarEvent]) -> str:
    """One line per event, grouped in due-date order."""
    if not events:
        return "No events."
    return "\n".join(render_event_line(e) for e in events)


def render_day_details(day: CalendarDay) -> str:
    header = day.date.strftime("%A, %B %d, %Y").replace(" 0", " ")
    if not day.events:
        return f"{header}\nNo events."
    lines = [header]
    for event in day.events:
        line = f"• {event.title} — {event_type_label(event.event_type)}"
        if event.due_time:
            line += f" at {format_time(event.due_time)}"
        level = confidence_level(event.confidence_score)
        if level:
            line += f" ({level} confidence)"
        lines.append(line)
    return "\n".join(lines)
