"""
Syllabus Calendar — Error taxonomy.

Every failure a caller may need to show to the user derives from
SyllabusCalendarError and carries a human-readable message.
Validation rejections are not errors: invalid events are filtered silently.
"""

from __future__ import annotations


class SyllabusCalendarError(Exception):
    """Base class for all domain errors."""


class UnsupportedDocumentType(SyllabusCalendarError):
    """Raised when an upload is not a PDF."""


class TextExtractionFailure(SyllabusCalendarError):
    """Raised when a document cannot be parsed at all."""


class ExtractionServiceFailure(SyllabusCalendarError):
    """Raised by the LLM client on any upstream failure.

    The extractor recovers from it with the regex fallback, so it never
    reaches the user on its own.
    """


class StorageWriteError(SyllabusCalendarError):
    """Raised when a batch of events could not be written. Nothing was saved."""


class ClassNotFound(SyllabusCalendarError):
    """Raised when a class id does not exist or belongs to another user."""


class DuplicateClass(SyllabusCalendarError):
    """Raised when a class with the same name already exists for a semester."""


class SyllabusNotFound(SyllabusCalendarError):
    """Raised when a syllabus id does not exist for the given class."""


class SyllabusBusy(SyllabusCalendarError):
    """Raised when a syllabus is already being processed."""


class EmptySyllabus(SyllabusCalendarError):
    """Raised when a stored syllabus has no text to process."""


class EventNotFound(SyllabusCalendarError):
    """Raised when an event id does not exist or belongs to another user."""
