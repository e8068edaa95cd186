"""Stage 1: extract product details and structure from the submission."""

from collections.abc import Mapping
from typing import Any

from ..rag.context import ReferenceContext
from .base import StructuredAgent, SubmittedDocument
from .schemas import DocumentParse


class DocumentParserAgent(StructuredAgent):
    """Reads the raw submission text; uses no earlier outputs and no guidance."""

    stage_name = "document-structure-extraction"
    output_schema = DocumentParse

    def system_prompt(self, document: SubmittedDocument) -> str:
        return """You are a document parsing agent for pharmaceutical regulatory submissions to the Saudi Food & Drug Authority (SFDA).

Extract from the submitted document:
1. Product information: name and license number when present
2. Document structure: sections and table of contents
3. Document metadata: date, type and language
4. Sections that matter for a variation submission

Be thorough and accurate."""

    def build_prompt(
        self,
        document: SubmittedDocument,
        outputs: Mapping[str, Any],
        context: ReferenceContext,
    ) -> str:
        return f"""Analyze this pharmaceutical document submitted for SFDA variation review.

DOCUMENT TEXT:
{document.text}

Identify every major section, the product details and the overall document structure."""
