"""
Syllabus Calendar — Event Extraction.

Brain of the upload workflow: turns raw syllabus text into CandidateEvents.

Primary path asks the configured LLM for a JSON array of events. On any
failure (no credential, network error, bad status, unparseable reply) a
fixed battery of regular expressions is run over the text instead.
Extraction as a whole never raises — an empty list means "no events found".
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from src.core.errors import ExtractionServiceFailure
from src.core.llm import LLMConfig, complete

logger = logging.getLogger(__name__)

EVENT_TYPES = ("assignment", "exam", "quiz", "project", "reading", "deadline")

FALLBACK_CONFIDENCE = 0.7
DEFAULT_CONFIDENCE = 0.5


# ---------------------------------------------------------------------------
# JSON contract shared with the LLM
# ---------------------------------------------------------------------------


class CandidateEvent(BaseModel):
    """A calendar event proposed by extraction, not yet validated.

    JSON example (wire names):
    {
        "title": "Problem Set 1",
        "description": "Chapters 1-3",
        "eventType": "assignment",
        "dueDate": "2024-09-15",
        "dueTime": "23:59",
        "confidenceScore": 0.9,
        "sourceText": "Problem Set 1 due September 15, 2024 at 11:59pm"
    }
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str = "Unknown Event"
    description: str | None = None
    event_type: str = Field(default="deadline", alias="eventType")
    due_date: str | None = Field(default=None, alias="dueDate")    # ISO YYYY-MM-DD
    due_time: str | None = Field(default=None, alias="dueTime")    # HH:MM, 24h
    confidence_score: float = Field(default=DEFAULT_CONFIDENCE, alias="confidenceScore")
    source_text: str = Field(default="", alias="sourceText")


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

EXTRACTION_PROMPT = """\
You are an assistant that extracts calendar events from academic syllabi.
Identify assignments, exams, quizzes, projects, readings and deadlines together with their due dates.

Analyze the syllabus text below and return ONLY a valid JSON array. No markdown, no explanation, no text before or after the array.

Each event must have exactly these fields:
- "title": a clear, concise title for the event
- "description": additional details about the event, or null
- "eventType": one of "assignment", "exam", "quiz", "project", "reading", "deadline"
- "dueDate": the date in ISO format (YYYY-MM-DD)
- "dueTime": the time in 24-hour format (HH:MM) if stated, otherwise null
- "confidenceScore": a number from 0.0 to 1.0
- "sourceText": the exact snippet of the syllabus that produced this event

Rules:
1. Only extract events with an explicit calendar date that can be resolved to a day ("Assignment due: September 15" qualifies).
2. Exclude relative or vague references such as "second Tuesday" or "Week 3" unless the syllabus gives an anchor date that resolves them.
3. The confidenceScore must reflect genuine certainty: give ambiguous matches a low score instead of leaving them out. Omit an event only when no date can be resolved at all.
4. Always include the original text snippet used to create each event.
5. Dates may appear as "March 15th", "Due: 3/15", "Dec 10", "2024-12-10"; always convert them to YYYY-MM-DD.
6. Classify events:
   - "assignment" for homework, papers, reports
   - "exam" for tests, finals, midterms
   - "quiz" for short assessments
   - "project" for major assignments
   - "reading" for required readings and chapters
   - "deadline" for any other time-sensitive item
7. If no events are found, return exactly: []

Syllabus text to analyze:
"""


# ---------------------------------------------------------------------------
# LLM response handling
# ---------------------------------------------------------------------------

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


def _find_json_array(response_text: str) -> list:
    """Parse the first bracket-delimited substring of a model reply.

    Raises ExtractionServiceFailure if there is none or it is not an array.
    """
    match = _JSON_ARRAY_RE.search(response_text or "")
    if not match:
        logger.error("No JSON array found in LLM response: %s", response_text)
        raise ExtractionServiceFailure("No JSON array found in LLM response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LLM response as JSON: %s — raw: '%s'", exc, match.group(0))
        raise ExtractionServiceFailure(f"Malformed JSON in LLM response: {exc}") from exc

    if not isinstance(data, list):
        logger.error("LLM response is not an array: %s", type(data).__name__)
        raise ExtractionServiceFailure("LLM response is not an array")
    return data


def _coerce_event(item: dict) -> CandidateEvent:
    """Fill defaults for missing fields. dueDate/dueTime are passed through."""
    confidence = item.get("confidenceScore")
    try:
        confidence = DEFAULT_CONFIDENCE if confidence is None else float(confidence)
    except (TypeError, ValueError):
        logger.warning("Non-numeric confidenceScore %r, using default", confidence)
        confidence = DEFAULT_CONFIDENCE

    due_date = item.get("dueDate")
    due_time = item.get("dueTime")

    return CandidateEvent(
        title=str(item.get("title") or "Unknown Event"),
        description=str(item["description"]) if item.get("description") else None,
        event_type=str(item.get("eventType") or "deadline"),
        due_date=due_date if isinstance(due_date, str) else None,
        due_time=due_time if isinstance(due_time, str) and due_time else None,
        confidence_score=confidence,
        source_text=str(item.get("sourceText") or ""),
    )


async def extract_events_with_llm(text: str, config: LLMConfig) -> list[CandidateEvent]:
    """Primary path: one LLM request, strict response shape.

    Raises ExtractionServiceFailure on any failure.
    """
    response_text = await complete(EXTRACTION_PROMPT + text, config)
    logger.debug("LLM raw response: %s", response_text)

    events: list[CandidateEvent] = []
    for item in _find_json_array(response_text):
        if not isinstance(item, dict):
            logger.warning("Skipping non-object item in array: %s", item)
            continue
        events.append(_coerce_event(item))

    logger.info("LLM extracted %d candidate event(s)", len(events))
    return events


# ---------------------------------------------------------------------------
# Regex fallback
# ---------------------------------------------------------------------------

_MONTHS = "january|february|march|april|may|june|july|august|september|october|november|december"
_MONTH_ABBREVIATIONS = "jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec"

DATE_PATTERNS = [
    # "Assignment: Essay 1: September 15, 2024"
    re.compile(
        r"(assignment|exam|quiz|project|deadline|due)[\s:]+([^:]+?)[\s:]+"
        rf"({_MONTHS})\s+(\d{{1,2}}),?\s+(\d{{4}})",
        re.IGNORECASE,
    ),
    # "Quiz: Chapter 2: 10/03/2024"
    re.compile(
        r"(assignment|exam|quiz|project|deadline|due)[\s:]+([^:]+?)[\s:]+"
        r"(\d{1,2})/(\d{1,2})/(\d{4})",
        re.IGNORECASE,
    ),
    # "Midterm - Units 1-4 - Oct 12" (no year: never resolvable, kept for parity)
    re.compile(
        r"(final\s+exam|midterm|assignment|project)[\s:-]+([^-]+?)[\s:-]+"
        rf"({_MONTH_ABBREVIATIONS})\s+(\d{{1,2}})",
        re.IGNORECASE,
    ),
]

MONTH_MAP: dict[str, int] = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}


def determine_event_type(keyword: str) -> str:
    """Map a matched keyword to a category. Order matters: exam wins."""
    lower = keyword.lower()
    if "exam" in lower or "final" in lower or "midterm" in lower:
        return "exam"
    if "quiz" in lower:
        return "quiz"
    if "project" in lower:
        return "project"
    if "assignment" in lower:
        return "assignment"
    return "deadline"


def _parse_regex_match(match: re.Match) -> CandidateEvent | None:
    """Build a CandidateEvent from a fallback match, or None if no full date."""
    groups = list(match.groups()) + [None] * (5 - len(match.groups()))
    keyword, raw_title, first, second, third = groups[:5]

    event_type = determine_event_type(keyword or "")
    title = (raw_title or "").strip()

    month_from_name = MONTH_MAP.get((first or "").lower())
    if month_from_name:
        month, day, year = month_from_name, second, third
    elif first and second and third:
        month, day, year = first, second, third
    else:
        return None

    if not year:
        return None
    try:
        due = date(int(year), int(month), int(day))
    except (TypeError, ValueError):
        return None

    return CandidateEvent(
        title=title or f"{event_type} due",
        description="Extracted from syllabus text",
        event_type=event_type,
        due_date=due.isoformat(),
        due_time=None,
        confidence_score=FALLBACK_CONFIDENCE,
        source_text=match.group(0),
    )


def extract_events_with_regex(text: str) -> list[CandidateEvent]:
    """Fallback path. Best effort: may return duplicates or nothing."""
    events: list[CandidateEvent] = []
    for pattern in DATE_PATTERNS:
        for match in pattern.finditer(text):
            event = _parse_regex_match(match)
            if event is not None:
                events.append(event)

    logger.info("Regex fallback extracted %d candidate event(s)", len(events))
    return events


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def extract_events(text: str, config: LLMConfig) -> list[CandidateEvent]:
    """Extract candidate events from syllabus text. Never raises."""
    if not text or not text.strip():
        logger.info("No text to extract events from")
        return []

    try:
        return await extract_events_with_llm(text, config)
    except Exception as exc:
        logger.warning("LLM extraction failed (%s), falling back to regex", exc)

    try:
        return extract_events_with_regex(text)
    except Exception as exc:
        logger.error("Regex fallback failed: %s", exc)
        return []
