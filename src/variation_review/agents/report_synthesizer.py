"""Stage 6: turn all findings into prioritized recommendations and an executive summary."""

from collections.abc import Mapping
from typing import Any

from ..rag.context import ReferenceContext
from .base import StructuredAgent, SubmittedDocument
from .compliance_checker import ComplianceCheckerAgent
from .document_parser import DocumentParserAgent
from .documentation_validator import DocumentationValidatorAgent
from .risk_assessor import RiskAssessorAgent
from .schemas import (
    DocumentationValidation,
    DocumentParse,
    RegulatoryCompliance,
    ReportSynthesis,
    RiskAssessment,
    VariationClassification,
)
from .variation_classifier import VariationClassifierAgent


def language_instruction(document: SubmittedDocument) -> str:
    if document.is_arabic:
        return "Generate all text in Arabic language."
    return "Generate all text in English language."


class ReportSynthesizerAgent(StructuredAgent):
    """Writes the client-facing text, in the locale the submission asked for."""

    stage_name = "report-synthesis"
    depends_on = (
        DocumentParserAgent.stage_name,
        VariationClassifierAgent.stage_name,
        ComplianceCheckerAgent.stage_name,
        DocumentationValidatorAgent.stage_name,
        RiskAssessorAgent.stage_name,
    )
    output_schema = ReportSynthesis

    def system_prompt(self, document: SubmittedDocument) -> str:
        return f"""You are a report synthesis agent for SFDA pharmaceutical submissions.

{language_instruction(document)}

Combine the findings of all previous stages into prioritized, actionable recommendations and an
executive summary that highlights key findings, critical issues and next steps for the applicant.

Be specific, cite SFDA references, order recommendations by priority and keep a professional,
constructive tone."""

    def build_prompt(
        self,
        document: SubmittedDocument,
        outputs: Mapping[str, Any],
        context: ReferenceContext,
    ) -> str:
        parsed = self.prior(outputs, DocumentParserAgent.stage_name, DocumentParse)
        classification = self.prior(
            outputs, VariationClassifierAgent.stage_name, VariationClassification
        )
        compliance = self.prior(outputs, ComplianceCheckerAgent.stage_name, RegulatoryCompliance)
        documentation = self.prior(
            outputs, DocumentationValidatorAgent.stage_name, DocumentationValidation
        )
        risk = self.prior(outputs, RiskAssessorAgent.stage_name, RiskAssessment)

        return f"""Write the evaluation report from the findings below.

{language_instruction(document)}

DOCUMENT METADATA:
{parsed.to_prompt_json()}

VARIATION CLASSIFICATION:
{classification.to_prompt_json()}

REGULATORY COMPLIANCE:
{compliance.to_prompt_json()}

DOCUMENTATION VALIDATION:
{documentation.to_prompt_json()}

RISK ASSESSMENT:
{risk.to_prompt_json()}

Produce:
1. Prioritized recommendations addressing critical issues first, each with an action, rationale,
   SFDA reference and estimated impact.
2. An executive summary with an overall compliance score (0-100), two or three paragraphs of
   summary, three to five key findings, the critical issues and next steps in priority order.

The summary is read by senior management."""
