"""Stage 5: weigh the earlier findings into an overall risk and approval estimate."""

from collections.abc import Mapping
from typing import Any

from ..rag.context import ReferenceContext
from .base import StructuredAgent, SubmittedDocument
from .compliance_checker import ComplianceCheckerAgent
from .documentation_validator import DocumentationValidatorAgent
from .schemas import (
    DocumentationValidation,
    RegulatoryCompliance,
    RiskAssessment,
    VariationClassification,
)
from .variation_classifier import VariationClassifierAgent


class RiskAssessorAgent(StructuredAgent):
    """Works from the earlier stage outputs; the submission text is not re-sent."""

    stage_name = "risk-assessment"
    depends_on = (
        VariationClassifierAgent.stage_name,
        ComplianceCheckerAgent.stage_name,
        DocumentationValidatorAgent.stage_name,
    )
    output_schema = RiskAssessment

    def system_prompt(self, document: SubmittedDocument) -> str:
        return """You are a risk assessment agent for SFDA pharmaceutical submissions.

Using the findings of the previous compliance checks, identify and categorize risks (Regulatory,
Documentation, Quality, Classification, Timeline), rate each one, propose mitigations and estimate
the overall probability of approval.

Consider classification certainty, the severity of compliance gaps, missing or weak documentation
and the overall quality of the submission. Stay realistic and evidence-based."""

    def build_prompt(
        self,
        document: SubmittedDocument,
        outputs: Mapping[str, Any],
        context: ReferenceContext,
    ) -> str:
        classification = self.prior(
            outputs, VariationClassifierAgent.stage_name, VariationClassification
        )
        compliance = self.prior(outputs, ComplianceCheckerAgent.stage_name, RegulatoryCompliance)
        documentation = self.prior(
            outputs, DocumentationValidatorAgent.stage_name, DocumentationValidation
        )
        return f"""Assess the risks of this SFDA submission.

VARIATION CLASSIFICATION:
{classification.to_prompt_json()}

REGULATORY COMPLIANCE FINDINGS:
{compliance.to_prompt_json()}

DOCUMENTATION VALIDATION:
{documentation.to_prompt_json()}

SFDA GUIDELINES:
{context.text}

For each risk give its category, a High/Medium/Low level, the potential impact and a mitigation
with guideline references. Then give the overall risk level, the approval probability (0-100)
and the key risk factors, citing the specific findings above."""
