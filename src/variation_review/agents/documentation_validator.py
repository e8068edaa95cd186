"""Stage 4: verify that the documents required for the variation type are present."""

from collections.abc import Mapping
from typing import Any

from ..rag.context import ReferenceContext
from .base import StructuredAgent, SubmittedDocument
from .schemas import DocumentationValidation, VariationClassification
from .variation_classifier import VariationClassifierAgent


class DocumentationValidatorAgent(StructuredAgent):
    stage_name = "documentation-completeness-check"
    depends_on = (VariationClassifierAgent.stage_name,)
    output_schema = DocumentationValidation

    def system_prompt(self, document: SubmittedDocument) -> str:
        return """You are a documentation validation agent for SFDA pharmaceutical submissions.

Identify every document the SFDA guidelines require for the variation type, check which are
present in the submission, judge the quality of those present, list what is missing with its
impact, and suggest supporting documents that would strengthen the submission.

Missing critical documents lead to rejection, so be meticulous."""

    def build_prompt(
        self,
        document: SubmittedDocument,
        outputs: Mapping[str, Any],
        context: ReferenceContext,
    ) -> str:
        classification = self.prior(
            outputs, VariationClassifierAgent.stage_name, VariationClassification
        )
        return f"""Validate the documentation of this SFDA variation submission.

VARIATION TYPE: {classification.variation_type.value}
CHANGE DESCRIPTION: {classification.change_description}

SUBMISSION DOCUMENT:
{document.text}

SFDA GUIDELINES (including required documentation lists):
{context.text}

For each missing document, state whether it is mandatory, how its absence affects the chance of
approval and which guideline section requires it. Reference specific guideline sections throughout."""
