"""
Pydantic data models for the PDGM reimbursement engine.

Every component (classifier, scorer, HIPPS generator, revenue calculator,
extraction validator, missing-field detector) produces typed output
conforming to these models. The final DocumentReport is what gets
serialized to results.json and consumed by the billing dashboards.

Models are frozen: each pipeline stage returns a new value instead of
editing the one it was given.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AdmissionSource(str, Enum):
    COMMUNITY = "community"
    INSTITUTIONAL = "institutional"


class EpisodeTiming(str, Enum):
    EARLY = "early"    # days 1-30
    LATE = "late"      # days 31-60


# ---------------------------------------------------------------------------
# PDGM scoring / payment
# ---------------------------------------------------------------------------

class FunctionalStatusScores(BaseModel):
    """OASIS M1800-M1870 functional items. Any subset may be present."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    m1800_grooming: int | None = Field(default=None, ge=0, le=3, alias="M1800_Grooming")
    m1810_dress_upper: int | None = Field(default=None, ge=0, le=3, alias="M1810_DressUpper")
    m1820_dress_lower: int | None = Field(default=None, ge=0, le=3, alias="M1820_DressLower")
    m1830_bathing: int | None = Field(default=None, ge=0, le=6, alias="M1830_Bathing")
    m1840_toilet_transfer: int | None = Field(default=None, ge=0, le=4, alias="M1840_ToiletTransfer")
    m1845_toileting_hygiene: int | None = Field(default=None, ge=0, le=3, alias="M1845_ToiletingHygiene")
    m1850_transferring: int | None = Field(default=None, ge=0, le=5, alias="M1850_Transferring")
    m1860_ambulation: int | None = Field(default=None, ge=0, le=6, alias="M1860_Ambulation")
    m1870_feeding: int | None = Field(default=None, ge=0, le=5, alias="M1870_Feeding")

    def present_items(self) -> dict[str, int]:
        """Items that were actually documented, keyed by OASIS item name."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ClinicalGroup(BaseModel):
    """PDGM clinical group derived from the primary diagnosis."""
    model_config = ConfigDict(frozen=True)

    code: str = Field(pattern=r"^[A-G]$")
    name: str


class LevelResult(BaseModel):
    """A banded level: the HIPPS digit plus its display label."""
    model_config = ConfigDict(frozen=True)

    code: str
    name: str


class RevenueResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    case_mix_weight: float
    revenue: float


class HIPPSResult(BaseModel):
    """Complete HIPPS classification and payment for one episode."""
    model_config = ConfigDict(frozen=True)

    hipps_code: str = Field(min_length=5, max_length=5)
    admission_source: str
    timing: str
    clinical_group: str
    clinical_group_name: str
    functional_score: int
    functional_level: str
    comorbidity_level: str
    case_mix_weight: float
    base_rate: float
    revenue: float


class EpisodeParams(BaseModel):
    """Episode attributes shared by the current and optimized calculations."""
    model_config = ConfigDict(frozen=True)

    admission_source: AdmissionSource = AdmissionSource.COMMUNITY
    timing: EpisodeTiming = EpisodeTiming.EARLY
    primary_diagnosis: str = ""
    # None = derive from the analysis; 0 is an explicit "no comorbidities"
    secondary_diagnoses_count: int | None = Field(default=None, ge=0)
    has_high_risk_dx: bool = False


class OptimizedRevenue(BaseModel):
    """Current (as documented) vs optimized (AI-suggested) reimbursement."""
    model_config = ConfigDict(frozen=True)

    current: HIPPSResult
    optimized: HIPPSResult
    increase: float
    percent_increase: float


# ---------------------------------------------------------------------------
# AI extraction payload (camelCase on the wire)
# ---------------------------------------------------------------------------

class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _coerce_text(value):
    # the model returns numbers for scored items ("currentValue": 2)
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


class PatientInfo(_WireModel):
    name: str | None = None
    mrn: str | None = None
    visit_type: str | None = None
    payor: str | None = None
    visit_date: str | None = None
    clinician: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, value):
        return _coerce_text(value)


class Diagnosis(_WireModel):
    code: str | None = None
    description: str | None = None
    confidence: float | None = None

    @field_validator("code", "description", mode="before")
    @classmethod
    def _text(cls, value):
        return _coerce_text(value)


class ClinicalItem(_WireModel):
    """A single extracted assessment item, e.g. 'M1830 - Bathing' = '3'."""
    item: str = ""
    current_value: str | None = None
    current_description: str | None = None
    suggested_value: str | None = None
    suggested_description: str | None = None
    clinical_rationale: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, value):
        return _coerce_text(value)

    @field_validator("item", mode="before")
    @classmethod
    def _label(cls, value):
        return "" if value is None else _coerce_text(value)


class MissingFieldEntry(_WireModel):
    """A required or recommended OASIS field that is blank or absent."""
    field: str
    location: str
    impact: str
    recommendation: str
    required: bool


class FlaggedIssue(_WireModel):
    issue: str = ""
    severity: str = "medium"
    location: str | None = None
    suggestion: str | None = None
    category: str | None = None
    clinical_impact: str | None = None


class Inconsistency(_WireModel):
    section_a: str = ""
    section_b: str = ""
    conflict_type: str = ""
    severity: str = "medium"
    recommendation: str | None = None
    clinical_impact: str | None = None


class Recommendation(_WireModel):
    category: str = "General"
    recommendation: str = ""
    priority: str = "medium"
    expected_impact: str | None = None


class SuggestedCode(_WireModel):
    """An ICD-10 code the documentation supports but the form does not list."""
    code: str = ""
    description: str | None = None
    reason: str | None = None
    revenue_impact: float | None = None
    confidence: float | None = None

    @field_validator("code", mode="before")
    @classmethod
    def _text(cls, value):
        return "" if value is None else _coerce_text(value)


class Correction(_WireModel):
    """A proposed change to a documented answer."""
    field: str = ""
    current: str | None = None
    suggested: str | None = None
    reason: str | None = None
    impact: str | None = None
    revenue_change: float | None = None

    @field_validator("current", "suggested", mode="before")
    @classmethod
    def _text(cls, value):
        return _coerce_text(value)


class RiskFactor(_WireModel):
    factor: str = ""
    severity: str = "medium"
    recommendation: str | None = None


class OasisAnalysisResult(_WireModel):
    """Structured output of the AI extraction call for one OASIS document."""
    patient_info: PatientInfo = Field(default_factory=PatientInfo)
    primary_diagnosis: Diagnosis = Field(default_factory=Diagnosis)
    secondary_diagnoses: list[Diagnosis] = []

    functional_status: list[ClinicalItem] = []
    medications: list[ClinicalItem] = []
    pain_status: list[ClinicalItem] = []
    integumentary_status: list[ClinicalItem] = []
    respiratory_status: list[ClinicalItem] = []
    cardiac_status: list[ClinicalItem] = []
    elimination_status: list[ClinicalItem] = []
    neuro_emotional_behavioral_status: list[ClinicalItem] = []
    emotional_status: list[ClinicalItem] = []
    behavioral_status: list[ClinicalItem] = []

    # Owned by the missing-field detector; whatever the AI put here is discarded
    missing_information: list[MissingFieldEntry] = []
    completeness_score: int | None = None

    flagged_issues: list[FlaggedIssue] = []
    inconsistencies: list[Inconsistency] = []
    suggested_codes: list[SuggestedCode] = []
    corrections: list[Correction] = []
    risk_factors: list[RiskFactor] = []
    recommendations: list[Recommendation] = []
    quality_score: float | None = None
    confidence_score: float | None = None


# Attribute names of the per-domain item arrays, in checklist order
CLINICAL_DOMAINS = (
    "functional_status",
    "medications",
    "pain_status",
    "integumentary_status",
    "respiratory_status",
    "cardiac_status",
    "elimination_status",
    "neuro_emotional_behavioral_status",
    "emotional_status",
    "behavioral_status",
)


# ---------------------------------------------------------------------------
# Validation audit
# ---------------------------------------------------------------------------

class DroppedItem(BaseModel):
    """An extracted item removed because it is not grounded in the source."""
    model_config = ConfigDict(frozen=True)

    domain: str
    item: str
    reason: str


# ---------------------------------------------------------------------------
# QAPI audit
# ---------------------------------------------------------------------------

class IncompleteElement(BaseModel):
    element: str
    location: str
    missing_information: str
    impact: str
    recommendation: str
    priority: str = Field(description="high | medium | low")


class ContradictoryElement(BaseModel):
    element_a: str
    element_b: str
    contradiction: str
    location: str
    impact: str
    recommendation: str
    severity: str = Field(description="critical | high | medium | low")


class RegulatoryDeficiency(BaseModel):
    deficiency: str
    regulation: str
    severity: str
    impact: str
    recommendation: str


class QapiRecommendation(BaseModel):
    category: str
    recommendation: str
    priority: str


class QapiAudit(BaseModel):
    """Quality Assessment and Performance Improvement view of one document."""
    incomplete_elements: list[IncompleteElement] = []
    contradictory_elements: list[ContradictoryElement] = []
    regulatory_deficiencies: list[RegulatoryDeficiency] = []
    recommendations: list[QapiRecommendation] = []

    def is_empty(self) -> bool:
        return not (
            self.incomplete_elements
            or self.contradictory_elements
            or self.regulatory_deficiencies
            or self.recommendations
        )


# ---------------------------------------------------------------------------
# Pipeline input / output
# ---------------------------------------------------------------------------

class DocumentInput(BaseModel):
    """A single OASIS document to analyze."""
    document_id: str
    source_text: str
    doctor_order_text: str | None = None
    analysis: OasisAnalysisResult | None = None   # None = run the extraction call
    episode: EpisodeParams = Field(default_factory=EpisodeParams)


class DocumentReport(BaseModel):
    """Complete result for a single document. This is the core output."""
    document_id: str
    analysis: OasisAnalysisResult | None = None
    dropped_items: list[DroppedItem] = []
    revenue: OptimizedRevenue | None = None
    qapi_audit: QapiAudit | None = None
    error: str | None = None


class BatchReport(BaseModel):
    """Aggregate report across all analyzed documents."""
    total_documents: int
    reports: list[DocumentReport]

    # Aggregate stats (computed after all documents analyzed)
    failed_documents: int = 0
    avg_completeness_score: float = 0.0
    total_dropped_items: int = 0
    total_missing_fields: int = 0
    total_current_revenue: float = 0.0
    total_optimized_revenue: float = 0.0
    total_revenue_increase: float = 0.0
    hipps_distribution: dict[str, int] = Field(default_factory=dict)
    most_common_missing_fields: list[dict] = Field(default_factory=list)
