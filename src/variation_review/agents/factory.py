"""
Assembly of the six-stage evaluation pipeline.

Stage order is fixed; each stage's declared dependencies are checked by the
pipeline at construction. The result builder folds the stage outputs into the
`EvaluationResult` handed back to clients.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from functools import partial
from typing import Any

from ..config.settings import Settings
from ..core.pipeline import Pipeline
from ..observability.logging import get_logger
from ..rag.context import ReferenceContextProvider
from .base import StructuredAgent, SubmittedDocument
from .compliance_checker import ComplianceCheckerAgent
from .document_parser import DocumentParserAgent
from .documentation_validator import DocumentationValidatorAgent
from .model_client import GenerativeModelClient
from .report_synthesizer import ReportSynthesizerAgent
from .risk_assessor import RiskAssessorAgent
from .schemas import (
    DocumentationValidation,
    DocumentMetadata,
    DocumentParse,
    EvaluationResult,
    RegulatoryCompliance,
    ReportSynthesis,
    RiskAssessment,
    VariationClassification,
)
from .variation_classifier import VariationClassifierAgent

logger = get_logger(__name__)

PIPELINE_NAME = "variation-evaluation"

STAGE_CLASSES: tuple[type[StructuredAgent], ...] = (
    DocumentParserAgent,
    VariationClassifierAgent,
    ComplianceCheckerAgent,
    DocumentationValidatorAgent,
    RiskAssessorAgent,
    ReportSynthesizerAgent,
)

STAGE_NAMES: tuple[str, ...] = tuple(cls.stage_name for cls in STAGE_CLASSES)
FIRST_STAGE = STAGE_NAMES[0]


def build_evaluation_result(
    document: SubmittedDocument,
    outputs: Mapping[str, Any],
    guideline_version: str = "v6.3",
) -> EvaluationResult:
    """Assemble the client-facing report from the six stage outputs."""
    parsed: DocumentParse = outputs[DocumentParserAgent.stage_name]
    classification: VariationClassification = outputs[VariationClassifierAgent.stage_name]
    compliance: RegulatoryCompliance = outputs[ComplianceCheckerAgent.stage_name]
    documentation: DocumentationValidation = outputs[DocumentationValidatorAgent.stage_name]
    risk: RiskAssessment = outputs[RiskAssessorAgent.stage_name]
    report: ReportSynthesis = outputs[ReportSynthesizerAgent.stage_name]

    return EvaluationResult(
        metadata=DocumentMetadata(
            product_name=parsed.product_name,
            license_number=parsed.license_number,
            submission_date=parsed.submission_date,
            variation_type=classification.variation_type,
            variation_type_confidence=classification.confidence,
            detected_sections=parsed.detected_sections,
        ),
        sections=compliance.sections,
        missing_documents=documentation.missing_documents,
        risk_assessment=risk,
        recommendations=report.recommendations,
        summary=report.summary,
        evaluation_date=datetime.now(UTC).isoformat(),
        sfda_guideline_version=guideline_version,
    )


def build_evaluation_pipeline(
    model_client: GenerativeModelClient,
    context_provider: ReferenceContextProvider,
    settings: Settings,
) -> Pipeline:
    """Create the evaluation pipeline with one executor per stage."""
    stages = [stage_class(model_client) for stage_class in STAGE_CLASSES]
    pipeline = Pipeline(
        name=PIPELINE_NAME,
        stages=stages,
        context_provider=context_provider,
        percent_checkpoints=settings.pipeline.percent_checkpoints,
        result_builder=partial(
            build_evaluation_result, guideline_version=settings.pipeline.guideline_version
        ),
    )
    logger.info(
        f"Built pipeline '{PIPELINE_NAME}' with stages: {', '.join(STAGE_NAMES)}",
        model=model_client.endpoint.name,
    )
    return pipeline
