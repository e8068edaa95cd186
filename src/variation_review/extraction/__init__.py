"""Submission validation and text extraction."""

from .pdf import ExtractedDocument, extract_pdf_text, validate_upload

__all__ = ["ExtractedDocument", "extract_pdf_text", "validate_upload"]
