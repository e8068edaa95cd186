"""Stage 3: check the submission against every requirement for its variation type."""

from collections.abc import Mapping
from typing import Any

from ..rag.context import ReferenceContext
from .base import StructuredAgent, SubmittedDocument
from .schemas import RegulatoryCompliance, VariationClassification
from .variation_classifier import VariationClassifierAgent


class ComplianceCheckerAgent(StructuredAgent):
    stage_name = "requirement-compliance-check"
    depends_on = (VariationClassifierAgent.stage_name,)
    output_schema = RegulatoryCompliance

    def system_prompt(self, document: SubmittedDocument) -> str:
        return """You are a regulatory compliance verification agent for SFDA pharmaceutical submissions.

For every applicable SFDA requirement:
1. Name the requirement
2. Decide whether the submission meets it
3. Quote the supporting evidence from the submission
4. Assign a status: Compliant, NonCompliant, PartiallyCompliant or NotApplicable
5. Rate the severity of any gap
6. Give specific recommendations

Check every requirement the guidelines list for the variation type. Do not skip any."""

    def build_prompt(
        self,
        document: SubmittedDocument,
        outputs: Mapping[str, Any],
        context: ReferenceContext,
    ) -> str:
        classification = self.prior(
            outputs, VariationClassifierAgent.stage_name, VariationClassification
        )
        variation_type = classification.variation_type.value
        return f"""Perform a full regulatory compliance check of this submission.

VARIATION CLASSIFICATION:
{classification.to_prompt_json()}

SUBMISSION DOCUMENT:
{document.text}

COMPLETE SFDA GUIDELINES:
{context.text}

Verify compliance with all SFDA requirements that apply to {variation_type} variations.
For each requirement, note whether the submission addresses it, the evidence or what is missing,
the compliance status, the severity of any issue, an actionable recommendation and the exact
guideline section. Group findings into logical sections such as Manufacturing Changes,
Quality Control and Labeling."""
