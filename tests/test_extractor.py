"""Tests for src.core.extractor — LLM extraction with regex fallback.

The LLM client (src.core.extractor.complete) is always mocked.
"""

import pytest
from unittest.mock import AsyncMock, patch

from src.core.errors import ExtractionServiceFailure
from src.core.extractor import (
    EXTRACTION_PROMPT,
    CandidateEvent,
    _coerce_event,
    _find_json_array,
    determine_event_type,
    extract_events,
    extract_events_with_llm,
    extract_events_with_regex,
)
from src.core.llm import LLMConfig


# ---------------------------------------------------------------------------
# CandidateEvent wire format
# ---------------------------------------------------------------------------


class TestCandidateEvent:
    def test_parses_wire_names(self):
        event = CandidateEvent.model_validate({
            "title": "Problem Set 1",
            "eventType": "assignment",
            "dueDate": "2024-09-15",
            "dueTime": "23:59",
            "confidenceScore": 0.9,
            "sourceText": "Problem Set 1 due September 15",
        })
        assert event.event_type == "assignment"
        assert event.due_date == "2024-09-15"
        assert event.due_time == "23:59"
        assert event.confidence_score == 0.9

    def test_defaults(self):
        event = CandidateEvent()
        assert event.title == "Unknown Event"
        assert event.event_type == "deadline"
        assert event.confidence_score == 0.5
        assert event.source_text == ""


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


class TestFindJsonArray:
    def test_array_surrounded_by_prose(self):
        data = _find_json_array('Sure! Here they are:\n[{"title": "Essay"}]\nGood luck.')
        assert data == [{"title": "Essay"}]

    def test_markdown_fenced_array(self):
        data = _find_json_array('```json\n[{"title": "Quiz 1"}]\n```')
        assert data == [{"title": "Quiz 1"}]

    def test_empty_array(self):
        assert _find_json_array("[]") == []

    def test_no_array_raises(self):
        with pytest.raises(ExtractionServiceFailure, match="No JSON array"):
            _find_json_array("I could not find any events.")

    def test_malformed_json_raises(self):
        with pytest.raises(ExtractionServiceFailure, match="Malformed JSON"):
            _find_json_array('[{"title": "Essay",]')

    def test_none_raises(self):
        with pytest.raises(ExtractionServiceFailure):
            _find_json_array(None)


class TestCoerceEvent:
    def test_missing_fields_get_defaults(self):
        event = _coerce_event({"dueDate": "2024-10-01"})
        assert event.title == "Unknown Event"
        assert event.description is None
        assert event.event_type == "deadline"
        assert event.due_time is None
        assert event.confidence_score == 0.5
        assert event.source_text == ""

    def test_explicit_zero_confidence_is_kept(self):
        event = _coerce_event({"title": "Reading", "dueDate": "2024-10-01", "confidenceScore": 0})
        assert event.confidence_score == 0.0

    def test_numeric_string_confidence(self):
        assert _coerce_event({"confidenceScore": "0.8"}).confidence_score == 0.8

    def test_non_numeric_confidence_uses_default(self):
        assert _coerce_event({"confidenceScore": "high"}).confidence_score == 0.5

    def test_out_of_range_confidence_passes_through(self):
        # Range checking happens in validation, not here
        assert _coerce_event({"confidenceScore": 1.5}).confidence_score == 1.5

    def test_non_string_due_date_dropped(self):
        assert _coerce_event({"dueDate": 20240915}).due_date is None

    def test_empty_due_time_becomes_none(self):
        assert _coerce_event({"dueTime": ""}).due_time is None

    def test_unparseable_due_date_passes_through(self):
        assert _coerce_event({"dueDate": "second Tuesday"}).due_date == "second Tuesday"


# ---------------------------------------------------------------------------
# LLM path
# ---------------------------------------------------------------------------


class TestExtractWithLLM:
    @pytest.mark.asyncio
    async def test_prompt_contains_text(self, llm_config):
        mock_complete = AsyncMock(return_value="[]")
        with patch("src.core.extractor.complete", mock_complete):
            await extract_events_with_llm("Midterm: October 12, 2024", llm_config)

        prompt = mock_complete.call_args.args[0]
        assert prompt.startswith(EXTRACTION_PROMPT)
        assert prompt.endswith("Midterm: October 12, 2024")

    @pytest.mark.asyncio
    async def test_parses_events(self, llm_config):
        reply = (
            '[{"title": "Essay 1", "description": "Five pages", "eventType": "assignment",'
            ' "dueDate": "2024-09-15", "dueTime": "23:59", "confidenceScore": 0.95,'
            ' "sourceText": "Essay 1 due Sept 15 at 11:59pm"},'
            ' {"title": "Midterm", "eventType": "exam", "dueDate": "2024-10-12",'
            ' "dueTime": null, "confidenceScore": 0.9, "sourceText": "Midterm Oct 12"}]'
        )
        with patch("src.core.extractor.complete", AsyncMock(return_value=reply)):
            events = await extract_events_with_llm("syllabus", llm_config)

        assert [e.title for e in events] == ["Essay 1", "Midterm"]
        assert events[0].due_time == "23:59"
        assert events[0].description == "Five pages"
        assert events[1].due_time is None

    @pytest.mark.asyncio
    async def test_skips_non_object_items(self, llm_config):
        reply = '["oops", 3, {"title": "Quiz 1", "eventType": "quiz", "dueDate": "2024-09-20"}]'
        with patch("src.core.extractor.complete", AsyncMock(return_value=reply)):
            events = await extract_events_with_llm("syllabus", llm_config)
        assert len(events) == 1
        assert events[0].title == "Quiz 1"

    @pytest.mark.asyncio
    async def test_non_array_reply_raises(self, llm_config):
        with patch("src.core.extractor.complete", AsyncMock(return_value='{"title": "x"}')):
            with pytest.raises(ExtractionServiceFailure):
                await extract_events_with_llm("syllabus", llm_config)


# ---------------------------------------------------------------------------
# Regex fallback
# ---------------------------------------------------------------------------


class TestDetermineEventType:
    @pytest.mark.parametrize("keyword,expected", [
        ("Final Exam", "exam"),
        ("midterm", "exam"),
        ("exam", "exam"),
        ("Quiz", "quiz"),
        ("project", "project"),
        ("Assignment", "assignment"),
        ("due", "deadline"),
        ("deadline", "deadline"),
        ("", "deadline"),
    ])
    def test_mapping(self, keyword, expected):
        assert determine_event_type(keyword) == expected


class TestExtractWithRegex:
    def test_month_name_date(self):
        events = extract_events_with_regex("Assignment due: September 15, 2024")
        assert len(events) == 1
        event = events[0]
        assert event.event_type == "assignment"
        assert event.due_date == "2024-09-15"
        assert event.confidence_score == 0.7
        assert event.due_time is None
        assert event.description == "Extracted from syllabus text"
        assert event.source_text == "Assignment due: September 15, 2024"

    def test_numeric_date(self):
        events = extract_events_with_regex("Quiz: Chapter 2: 10/03/2024")
        assert len(events) == 1
        assert events[0].title == "Chapter 2"
        assert events[0].event_type == "quiz"
        assert events[0].due_date == "2024-10-03"

    def test_exam_keyword(self):
        events = extract_events_with_regex("Exam: Midterm: March 3, 2025")
        assert events[0].event_type == "exam"
        assert events[0].title == "Midterm"
        assert events[0].due_date == "2025-03-03"

    def test_abbreviated_month_without_year_is_dropped(self):
        assert extract_events_with_regex("Final Exam - Units 1-4 - Oct 12") == []

    def test_impossible_date_is_dropped(self):
        assert extract_events_with_regex("Project: Paper: 13/45/2024") == []

    def test_no_matches(self):
        assert extract_events_with_regex("Office hours are on Tuesdays.") == []

    def test_multiple_lines(self):
        text = (
            "Assignment: Essay 1: September 15, 2024\n"
            "Project: Final Report: December 1, 2024\n"
        )
        events = extract_events_with_regex(text)
        assert [e.due_date for e in events] == ["2024-09-15", "2024-12-01"]
        assert [e.event_type for e in events] == ["assignment", "project"]


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


class TestExtractEvents:
    @pytest.mark.asyncio
    async def test_empty_text_skips_llm(self, llm_config):
        mock_complete = AsyncMock()
        with patch("src.core.extractor.complete", mock_complete):
            assert await extract_events("   \n", llm_config) == []
        mock_complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_uses_llm_result(self, llm_config):
        reply = '[{"title": "Quiz 1", "eventType": "quiz", "dueDate": "2024-09-20"}]'
        with patch("src.core.extractor.complete", AsyncMock(return_value=reply)):
            events = await extract_events("Quiz 1 on September 20", llm_config)
        assert [e.title for e in events] == ["Quiz 1"]

    @pytest.mark.asyncio
    async def test_llm_empty_array_does_not_fall_back(self, llm_config):
        with patch("src.core.extractor.complete", AsyncMock(return_value="[]")):
            events = await extract_events("Assignment due: September 15, 2024", llm_config)
        assert events == []

    @pytest.mark.asyncio
    async def test_service_failure_falls_back_to_regex(self, llm_config):
        failing = AsyncMock(side_effect=ExtractionServiceFailure("Gemini API error: 503"))
        with patch("src.core.extractor.complete", failing):
            events = await extract_events("Assignment due: September 15, 2024", llm_config)
        assert len(events) == 1
        assert events[0].due_date == "2024-09-15"
        assert events[0].confidence_score == 0.7

    @pytest.mark.asyncio
    async def test_unexpected_error_falls_back_to_regex(self, llm_config):
        with patch("src.core.extractor.complete", AsyncMock(side_effect=RuntimeError("boom"))):
            events = await extract_events("Quiz: Chapter 2: 10/03/2024", llm_config)
        assert events[0].event_type == "quiz"

    @pytest.mark.asyncio
    async def test_prose_reply_falls_back_to_regex(self, llm_config):
        with patch("src.core.extractor.complete", AsyncMock(return_value="No events here.")):
            events = await extract_events("Assignment due: September 15, 2024", llm_config)
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_missing_api_key_falls_back_without_network(self):
        config = LLMConfig(api_key="")
        with patch("src.core.llm.httpx.AsyncClient") as mock_client:
            events = await extract_events("Assignment due: September 15, 2024", config)
        mock_client.assert_not_called()
        assert events[0].event_type == "assignment"

    @pytest.mark.asyncio
    async def test_fallback_failure_returns_empty(self, llm_config):
        with patch("src.core.extractor.complete", AsyncMock(side_effect=RuntimeError("down"))), \
             patch("src.core.extractor.extract_events_with_regex", side_effect=RuntimeError("bad")):
            assert await extract_events("anything", llm_config) == []
