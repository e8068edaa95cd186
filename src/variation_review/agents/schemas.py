"""
Structured outputs of the evaluation stages and the final report.

Field names are snake_case in Python and camelCase on the wire: the model is
prompted with camelCase JSON and the client receives camelCase JSON.
"""

import json
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Immutable model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_prompt_json(self) -> str:
        """Pretty JSON used when feeding one stage's output into another's prompt."""
        return json.dumps(self.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False)

    @classmethod
    def json_schema_text(cls) -> str:
        return json.dumps(cls.model_json_schema(by_alias=True), indent=2)


class ComplianceStatus(str, Enum):
    COMPLIANT = "Compliant"
    NON_COMPLIANT = "NonCompliant"
    PARTIALLY_COMPLIANT = "PartiallyCompliant"
    NOT_APPLICABLE = "NotApplicable"


class OverallCompliance(str, Enum):
    COMPLIANT = "Compliant"
    NON_COMPLIANT = "NonCompliant"
    PARTIALLY_COMPLIANT = "PartiallyCompliant"


class VariationType(str, Enum):
    MAJOR = "Major"
    MINOR = "Minor"
    ADMINISTRATIVE = "Administrative"


class Level(str, Enum):
    """Shared High/Medium/Low scale for risks, impact and priority."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class FindingSeverity(str, Enum):
    CRITICAL = "Critical"
    MAJOR = "Major"
    MINOR = "Minor"
    INFO = "Info"


class DocumentLanguage(str, Enum):
    ENGLISH = "English"
    ARABIC = "Arabic"
    BOTH = "Both"


Percentage = Annotated[float, Field(ge=0, le=100)]


# --- document-structure-extraction ---


class DocumentSection(WireModel):
    title: str
    content: str
    page_number: int | None = None


class DocumentStructure(WireModel):
    has_table_of_contents: bool
    total_pages: int
    main_sections: list[DocumentSection] = Field(default_factory=list)


class DocumentParse(WireModel):
    product_name: str
    license_number: str | None = None
    submission_date: str
    detected_sections: list[str] = Field(default_factory=list)
    document_structure: DocumentStructure
    document_type: str
    language: DocumentLanguage


# --- change-classification ---


class ProductChange(WireModel):
    category: str
    description: str
    impact_level: Level


class VariationClassification(WireModel):
    variation_type: VariationType
    confidence: Percentage
    reasoning: str
    change_description: str
    changes_to_product: list[ProductChange] = Field(default_factory=list)
    sfda_classification_reference: str
    potential_reclassification_risk: str


# --- requirement-compliance-check ---


class ComplianceSection(WireModel):
    section_name: str
    requirement: str
    status: ComplianceStatus
    evidence: str
    findings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    severity: FindingSeverity
    sfda_reference: str


class RequirementCheck(WireModel):
    requirement: str
    met: bool
    evidence: str
    sfda_reference: str


class RegulatoryCompliance(WireModel):
    sections: list[ComplianceSection] = Field(default_factory=list)
    overall_compliance: OverallCompliance
    compliance_percentage: Percentage
    critical_non_compliances: list[str] = Field(default_factory=list)
    requirements_checklist: list[RequirementCheck] = Field(default_factory=list)


# --- documentation-completeness-check ---


class MissingDocument(WireModel):
    document_name: str
    requirement: str
    mandatory: bool
    impact: str
    sfda_reference: str


class DocumentStatus(str, Enum):
    COMPLETE = "Complete"
    INCOMPLETE = "Incomplete"
    UNCLEAR = "Unclear"


class DocumentQuality(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    ACCEPTABLE = "Acceptable"
    POOR = "Poor"


class PresentDocument(WireModel):
    document_name: str
    status: DocumentStatus
    quality: DocumentQuality
    issues: list[str] = Field(default_factory=list)
    location: str


class SuggestedDocument(WireModel):
    document_name: str
    rationale: str
    sfda_reference: str


class DocumentationValidation(WireModel):
    missing_documents: list[MissingDocument] = Field(default_factory=list)
    present_documents: list[PresentDocument] = Field(default_factory=list)
    documentation_completeness: Percentage
    critical_missing_documents: list[str] = Field(default_factory=list)
    recommended_additional_documents: list[SuggestedDocument] = Field(default_factory=list)


# --- risk-assessment ---


class RiskItem(WireModel):
    category: str
    level: Level
    description: str
    mitigation: str
    sfda_reference: str


class RiskAssessment(WireModel):
    overall_risk: Level
    risks: list[RiskItem] = Field(default_factory=list)
    approval_probability: Percentage
    key_risk_factors: list[str] = Field(default_factory=list)


# --- report-synthesis ---


class Recommendation(WireModel):
    priority: Level
    action: str
    rationale: str
    sfda_reference: str
    estimated_impact: str


class EvaluationSummary(WireModel):
    overall_score: Percentage
    executive_summary: str
    key_findings: list[str] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)


class ReportSynthesis(WireModel):
    recommendations: list[Recommendation] = Field(default_factory=list)
    summary: EvaluationSummary


# --- final report ---


class DocumentMetadata(WireModel):
    product_name: str
    license_number: str | None = None
    submission_date: str
    variation_type: VariationType
    variation_type_confidence: Percentage
    detected_sections: list[str] = Field(default_factory=list)


class EvaluationResult(WireModel):
    """The report returned to the client when a job completes."""

    metadata: DocumentMetadata
    sections: list[ComplianceSection]
    missing_documents: list[MissingDocument]
    risk_assessment: RiskAssessment
    recommendations: list[Recommendation]
    summary: EvaluationSummary
    evaluation_date: str
    sfda_guideline_version: str


def as_prompt_json(value: Any) -> str:
    if isinstance(value, WireModel):
        return value.to_prompt_json()
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)
