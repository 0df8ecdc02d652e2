"""
Syllabus Calendar — Text Acquisition.

Turns an uploaded syllabus into plain text. Only PDFs with an embedded
text layer are supported; there is no OCR, so scanned documents come back
as an empty string and simply produce no events downstream.
"""

from __future__ import annotations

import asyncio
import io
import logging

from pypdf import PdfReader

from src.core.errors import TextExtractionFailure, UnsupportedDocumentType

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
_GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def is_supported(mime_type: str | None, file_name: str = "") -> bool:
    """True if the upload can be processed automatically (PDF only)."""
    mime = (mime_type or "").lower().strip()
    if mime == PDF_MIME_TYPE:
        return True
    # Some clients send no useful mime type; trust the extension then
    return mime in _GENERIC_MIME_TYPES and file_name.lower().endswith(".pdf")


def extract_text(content: bytes, mime_type: str | None, file_name: str = "") -> str:
    """Extract the full text of a PDF, page by page, joined with newlines.

    Raises:
        UnsupportedDocumentType: the upload is not a PDF.
        TextExtractionFailure: the PDF could not be read at all.
    """
    if not is_supported(mime_type, file_name):
        raise UnsupportedDocumentType(
            "Only PDF files are supported for automatic processing"
        )

    try:
        reader = PdfReader(io.BytesIO(content))
        if reader.is_encrypted:
            raise TextExtractionFailure(f"{file_name or 'Document'} is encrypted")

        pages_text = []
        for page in reader.pages:
            pages_text.append(page.extract_text() or "")
    except TextExtractionFailure:
        raise
    except Exception as exc:
        logger.error("PDF text extraction failed for '%s': %s", file_name, exc)
        raise TextExtractionFailure("Failed to extract text from PDF") from exc

    text = "\n".join(pages_text).strip()
    logger.info(
        "Extracted %d characters from %d pages in '%s'",
        len(text), len(pages_text), file_name,
    )
    return text


async def extract_text_async(
    content: bytes, mime_type: str | None, file_name: str = "",
) -> str:
    """Run extract_text in a worker thread so the event loop stays free."""
    return await asyncio.to_thread(extract_text, content, mime_type, file_name)
