"""Stage 2: classify the proposed change as a Major, Minor or Administrative variation."""

from collections.abc import Mapping
from typing import Any

from ..rag.context import ReferenceContext
from .base import StructuredAgent, SubmittedDocument
from .document_parser import DocumentParserAgent
from .schemas import DocumentParse, VariationClassification


class VariationClassifierAgent(StructuredAgent):
    stage_name = "change-classification"
    depends_on = (DocumentParserAgent.stage_name,)
    output_schema = VariationClassification

    def system_prompt(self, document: SubmittedDocument) -> str:
        return """You are a variation classification agent for SFDA pharmaceutical regulatory submissions.

Classify the proposed changes using the SFDA variation types:
- Major: significant changes that may affect quality, safety or efficacy; prior approval required
- Minor: limited-impact changes that are not major; notification required
- Administrative: changes to administrative information only, with no effect on the product

You have the complete SFDA Guidelines for Variation Requirements. Base the classification on the
nature and extent of the changes, the SFDA criteria and the impact on quality, safety and efficacy.

When in doubt, choose the higher-risk category."""

    def build_prompt(
        self,
        document: SubmittedDocument,
        outputs: Mapping[str, Any],
        context: ReferenceContext,
    ) -> str:
        parsed = self.prior(outputs, DocumentParserAgent.stage_name, DocumentParse)
        return f"""Classify the following variation submission according to the SFDA guidelines.

DOCUMENT METADATA:
{parsed.to_prompt_json()}

COMPLETE SUBMISSION DOCUMENT:
{document.text}

SFDA VARIATION GUIDELINES:
{context.text}

State the variation type, justify it with specific guideline references and describe every proposed change."""
