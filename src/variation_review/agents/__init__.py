"""
Model-backed stage executors for variation evaluation.

Stages, in pipeline order:
- document-structure-extraction: product details and document structure
- change-classification: Major, Minor or Administrative variation
- requirement-compliance-check: per-requirement compliance findings
- documentation-completeness-check: present and missing documents
- risk-assessment: risks and approval probability
- report-synthesis: recommendations and executive summary
"""

from .base import StructuredAgent, SubmittedDocument
from .compliance_checker import ComplianceCheckerAgent
from .document_parser import DocumentParserAgent
from .documentation_validator import DocumentationValidatorAgent
from .factory import (
    FIRST_STAGE,
    STAGE_NAMES,
    build_evaluation_pipeline,
    build_evaluation_result,
)
from .model_client import GenerativeModelClient
from .report_synthesizer import ReportSynthesizerAgent
from .risk_assessor import RiskAssessorAgent
from .schemas import EvaluationResult
from .variation_classifier import VariationClassifierAgent

__all__ = [
    "StructuredAgent",
    "SubmittedDocument",
    "ComplianceCheckerAgent",
    "DocumentParserAgent",
    "DocumentationValidatorAgent",
    "ReportSynthesizerAgent",
    "RiskAssessorAgent",
    "VariationClassifierAgent",
    "FIRST_STAGE",
    "STAGE_NAMES",
    "build_evaluation_pipeline",
    "build_evaluation_result",
    "GenerativeModelClient",
    "EvaluationResult",
]
