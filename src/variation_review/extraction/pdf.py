"""
Upload validation and PDF text extraction.

Everything here runs before a job exists: a rejected upload never gets a job
id. Error messages are shown to the uploader as-is.
"""

import io
from dataclasses import dataclass

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ..config.settings import UploadConfig
from ..core.exceptions import InputValidationError
from ..observability.logging import get_logger

logger = get_logger(__name__)

NO_FILE_MESSAGE = "No file provided"
INVALID_TYPE_MESSAGE = "Invalid file type. Only PDF files are accepted."
PARSE_FAILED_MESSAGE = "Failed to parse PDF. Please ensure the file is a valid PDF document."
INSUFFICIENT_TEXT_MESSAGE = (
    "Could not extract sufficient text from PDF. The document may be scanned or image-based."
)


@dataclass(frozen=True)
class ExtractedDocument:
    filename: str
    text: str
    page_count: int
    size_bytes: int


def _size_label(max_bytes: int) -> str:
    megabytes = max_bytes / (1024 * 1024)
    return f"{megabytes:.0f}MB" if megabytes >= 1 else f"{max_bytes} bytes"


def extract_pdf_text(data: bytes) -> tuple[str, int]:
    """Return the text of every page joined by newlines, and the page count."""
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"PDF parsing error: {e}")
        raise InputValidationError(PARSE_FAILED_MESSAGE) from e

    return "\n".join(pages), len(pages)


def validate_upload(
    filename: str | None,
    content_type: str | None,
    data: bytes | None,
    config: UploadConfig,
) -> ExtractedDocument:
    """Check an upload and extract its text, raising `InputValidationError` on rejection."""
    if not filename and not data:
        raise InputValidationError(NO_FILE_MESSAGE)

    if content_type not in config.accepted_content_types:
        raise InputValidationError(INVALID_TYPE_MESSAGE)

    if not data:
        raise InputValidationError(NO_FILE_MESSAGE)

    if len(data) > config.max_bytes:
        raise InputValidationError(
            f"File too large. Maximum size is {_size_label(config.max_bytes)}."
        )

    text, page_count = extract_pdf_text(data)
    if len(text.strip()) < config.min_text_chars:
        raise InputValidationError(INSUFFICIENT_TEXT_MESSAGE)

    logger.info(
        f"Extracted {len(text)} characters from {filename}",
        pages=page_count,
        size_bytes=len(data),
    )
    return ExtractedDocument(
        filename=filename or "document.pdf",
        text=text,
        page_count=page_count,
        size_bytes=len(data),
    )
