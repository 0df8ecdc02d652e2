"""Tests for src.core.pipeline — end-to-end syllabus processing.

PDF parsing and the LLM client are mocked; storage is a temp SQLite file.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from src.core.errors import (
    ClassNotFound,
    EmptySyllabus,
    StorageWriteError,
    SyllabusBusy,
    SyllabusNotFound,
    TextExtractionFailure,
    UnsupportedDocumentType,
)
from src.core.calendar_grid import render_event_list
from src.core.extractor import CandidateEvent
from src.core.pipeline import (
    normalize_due_time,
    process_text,
    process_upload,
    reprocess_syllabus,
    syllabus_status,
    to_stored_event,
)

_LLM_REPLY = (
    '[{"title": "Essay 1", "eventType": "assignment", "dueDate": "2024-09-15",'
    ' "dueTime": "23:59", "confidenceScore": 0.9, "sourceText": "Essay 1 due 9/15"},'
    ' {"title": "essay 1", "eventType": "assignment", "dueDate": "2024-09-15",'
    ' "confidenceScore": 0.8, "sourceText": "dup"},'
    ' {"title": "Chapter 4", "eventType": "reading", "dueDate": "2024-09-20",'
    ' "confidenceScore": 0.7, "sourceText": "Read ch. 4"},'
    ' {"title": "Final", "eventType": "exam", "dueDate": "TBD", "sourceText": "Final TBD"}]'
)


def _patch_llm(reply=_LLM_REPLY):
    return patch("src.core.extractor.complete", AsyncMock(return_value=reply))


def _patch_pdf(text="Essay 1 due September 15, 2024"):
    return patch("src.core.pipeline.extract_text_async", AsyncMock(return_value=text))


class TestToStoredEvent:
    def test_mapping(self):
        candidate = CandidateEvent(
            title="Quiz 1", event_type="quiz", due_date="2024-09-20", due_time="10:00",
            confidence_score=0.8, source_text="Quiz 1 on 9/20",
        )
        stored = to_stored_event(candidate, class_id=3, user_id=12345, syllabus_id=9,
                                 extraction_method="upload_workflow")
        assert stored.class_id == 3
        assert stored.syllabus_id == 9
        assert stored.due_time == "10:00"
        assert stored.confidence_score == 0.8
        assert stored.source_text == "Quiz 1 on 9/20"
        assert stored.extraction_method == "upload_workflow"
        assert stored.is_exported is False
        assert stored.exported_at is None
        assert stored.ics_uid is None

    @pytest.mark.parametrize("value,expected", [
        ("23:59", "23:59"), ("09:05:00", "09:05"), (None, None), ("", None),
        ("11:59 PM", None), ("9:00", None), ("24:00", None), ("noon", None),
    ])
    def test_due_time_normalized(self, value, expected):
        assert normalize_due_time(value) == expected

    def test_unrecognised_time_becomes_all_day(self):
        candidate = CandidateEvent(title="Essay", event_type="assignment", due_date="2024-09-15",
                                   due_time="11:59 PM")
        assert to_stored_event(candidate, class_id=1, user_id=12345).due_time is None


class TestProcessText:
    @pytest.mark.asyncio
    async def test_validates_dedupes_and_saves(self, event_db, llm_config):
        with _patch_llm():
            result = await process_text("syllabus", 1, 12345, event_db, llm_config)

        assert result.saved_count == 1
        assert result.message == "Extracted and saved 1 event."
        stored = event_db.list_events(12345)
        assert [e.title for e in stored] == ["Essay 1"]
        assert stored[0].due_time == "23:59"
        assert stored[0].extraction_method == "llm"

    @pytest.mark.asyncio
    async def test_no_events_is_success(self, event_db, llm_config):
        with _patch_llm("[]"):
            result = await process_text("Welcome to class!", 1, 12345, event_db, llm_config)
        assert result.saved_count == 0
        assert result.message == "No calendar events were found in this syllabus."

    @pytest.mark.asyncio
    async def test_fallback_when_llm_fails(self, event_db, llm_config):
        failing = AsyncMock(side_effect=RuntimeError("timeout"))
        with patch("src.core.extractor.complete", failing):
            result = await process_text(
                "Assignment due: September 15, 2024", 1, 12345, event_db, llm_config,
            )
        assert result.saved_count == 1
        assert event_db.list_events(12345)[0].confidence_score == 0.7

    @pytest.mark.asyncio
    async def test_fallback_duplicates_collapse(self, event_db, llm_config):
        failing = AsyncMock(side_effect=RuntimeError("timeout"))
        text = "Exam: Midterm: October 1, 2024\nExam: Midterm: 10/01/2024"
        with patch("src.core.extractor.complete", failing):
            result = await process_text(text, 1, 12345, event_db, llm_config)
        assert result.saved_count == 1
        stored = event_db.list_events(12345)
        assert [(e.title, e.due_date) for e in stored] == [("Midterm", "2024-10-01")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("due_date", ["2024-W01-1", " 2024-09-15 "])
    async def test_non_calendar_date_shapes_never_stored(self, event_db, llm_config, due_date):
        reply = (
            '[{"title": "Essay", "eventType": "assignment", "dueDate": "' + due_date + '"},'
            ' {"title": "Quiz 1", "eventType": "quiz", "dueDate": "2024-09-20"}]'
        )
        with _patch_llm(reply):
            result = await process_text("syllabus", 1, 12345, event_db, llm_config)
        assert result.saved_count == 1
        stored = event_db.list_events(12345)
        assert [e.title for e in stored] == ["Quiz 1"]
        assert "Quiz 1" in render_event_list(stored)

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self, llm_config):
        event_db = MagicMock()
        event_db.insert_events.side_effect = StorageWriteError("Failed to insert events: disk full")
        with _patch_llm():
            with pytest.raises(StorageWriteError):
                await process_text("syllabus", 1, 12345, event_db, llm_config)


class TestProcessUpload:
    @pytest.mark.asyncio
    async def test_non_pdf_rejected_without_llm_call(
        self, class_db, syllabus_db, event_db, llm_config, sample_class,
    ):
        mock_complete = AsyncMock()
        with patch("src.core.extractor.complete", mock_complete):
            with pytest.raises(UnsupportedDocumentType):
                await process_upload(
                    b"hello", "text/plain", "notes.txt", sample_class.id, 12345,
                    class_db, syllabus_db, event_db, llm_config,
                )
        mock_complete.assert_not_called()
        assert syllabus_db.list_syllabi(sample_class.id) == []

    @pytest.mark.asyncio
    async def test_unknown_class(self, class_db, syllabus_db, event_db, llm_config):
        with pytest.raises(ClassNotFound):
            await process_upload(
                b"%PDF", "application/pdf", "s.pdf", 404, 12345,
                class_db, syllabus_db, event_db, llm_config,
            )

    @pytest.mark.asyncio
    async def test_unreadable_pdf(self, class_db, syllabus_db, event_db, llm_config, sample_class):
        failing = AsyncMock(side_effect=TextExtractionFailure("Failed to extract text from PDF"))
        with patch("src.core.pipeline.extract_text_async", failing):
            with pytest.raises(TextExtractionFailure):
                await process_upload(
                    b"junk", "application/pdf", "s.pdf", sample_class.id, 12345,
                    class_db, syllabus_db, event_db, llm_config,
                )

    @pytest.mark.asyncio
    async def test_success_records_syllabus(
        self, class_db, syllabus_db, event_db, llm_config, sample_class,
    ):
        with _patch_pdf("Essay 1 due September 15, 2024"), _patch_llm():
            result = await process_upload(
                b"%PDF-data", "application/pdf", "syllabus.pdf", sample_class.id, 12345,
                class_db, syllabus_db, event_db, llm_config,
            )

        assert result.saved_count == 1
        syllabus = syllabus_db.get_syllabus(result.syllabus.id)
        assert syllabus.processing_status == "completed"
        assert syllabus.content_text == "Essay 1 due September 15, 2024"
        assert syllabus.file_size == len(b"%PDF-data")

        stored = event_db.list_events(12345, syllabus_id=syllabus.id)
        assert stored[0].extraction_method == "upload_workflow"
        assert stored[0].class_id == sample_class.id

    @pytest.mark.asyncio
    async def test_storage_failure_marks_syllabus_failed(
        self, class_db, syllabus_db, llm_config, sample_class,
    ):
        event_db = MagicMock()
        event_db.insert_events.side_effect = StorageWriteError("Failed to insert events: locked")
        with _patch_pdf(), _patch_llm():
            with pytest.raises(StorageWriteError):
                await process_upload(
                    b"%PDF", "application/pdf", "s.pdf", sample_class.id, 12345,
                    class_db, syllabus_db, event_db, llm_config,
                )
        (syllabus,) = syllabus_db.list_syllabi(sample_class.id)
        assert syllabus.processing_status == "failed"
        assert "locked" in syllabus.processing_error


class TestReprocessSyllabus:
    def _add(self, syllabus_db, class_id, text="Assignment due: September 15, 2024", status="completed"):
        return syllabus_db.add_syllabus(
            class_id, 12345, "s.pdf", "application/pdf", 10, text, processing_status=status,
        )

    @pytest.mark.asyncio
    async def test_not_found(self, syllabus_db, event_db, llm_config, sample_class):
        with pytest.raises(SyllabusNotFound):
            await reprocess_syllabus(99, sample_class.id, 12345, syllabus_db, event_db, llm_config)

    @pytest.mark.asyncio
    async def test_other_users_syllabus(self, syllabus_db, event_db, llm_config, sample_class):
        s = self._add(syllabus_db, sample_class.id)
        with pytest.raises(SyllabusNotFound):
            await reprocess_syllabus(s.id, sample_class.id, 999, syllabus_db, event_db, llm_config)

    @pytest.mark.asyncio
    async def test_busy(self, syllabus_db, event_db, llm_config, sample_class):
        s = self._add(syllabus_db, sample_class.id, status="processing")
        with pytest.raises(SyllabusBusy):
            await reprocess_syllabus(s.id, sample_class.id, 12345, syllabus_db, event_db, llm_config)

    @pytest.mark.asyncio
    async def test_empty_content(self, syllabus_db, event_db, llm_config, sample_class):
        s = self._add(syllabus_db, sample_class.id, text="")
        with pytest.raises(EmptySyllabus):
            await reprocess_syllabus(s.id, sample_class.id, 12345, syllabus_db, event_db, llm_config)

    @pytest.mark.asyncio
    async def test_reprocess_saves_events(self, syllabus_db, event_db, llm_config, sample_class):
        s = self._add(syllabus_db, sample_class.id, status="failed")
        with _patch_llm():
            result = await reprocess_syllabus(
                s.id, sample_class.id, 12345, syllabus_db, event_db, llm_config,
            )
        assert result.saved_count == 1
        assert syllabus_db.get_syllabus(s.id).processing_status == "completed"
        assert event_db.list_events(12345, syllabus_id=s.id)[0].extraction_method == "llm"


class TestSyllabusStatus:
    def test_completed_includes_events(self, syllabus_db, event_db, sample_class, make_event):
        s = syllabus_db.add_syllabus(
            sample_class.id, 12345, "s.pdf", "application/pdf", 1, "x", processing_status="completed",
        )
        event_db.insert_events([make_event(class_id=sample_class.id, syllabus_id=s.id)])
        status = syllabus_status(s.id, 12345, syllabus_db, event_db)
        assert status.status == "completed"
        assert len(status.events) == 1

    def test_failed_includes_error(self, syllabus_db, event_db, sample_class):
        s = syllabus_db.add_syllabus(
            sample_class.id, 12345, "s.pdf", "application/pdf", 1, "x",
            processing_status="failed", processing_error="boom",
        )
        status = syllabus_status(s.id, 12345, syllabus_db, event_db)
        assert status.status == "failed"
        assert status.error == "boom"
        assert status.events == []

    def test_not_found(self, syllabus_db, event_db):
        with pytest.raises(SyllabusNotFound):
            syllabus_status(1, 12345, syllabus_db, event_db)
