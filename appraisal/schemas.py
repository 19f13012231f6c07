from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

PropertyType = Literal["apartment", "penthouse", "garden-apartment", "duplex", "house", "commercial"]
RenovationState = Literal["new", "renovated", "partial", "needs-renovation"]
Strategy = Literal["mean", "weighted-mean", "hedonic"]

# The ten percentage terms that make up an adjustment, in summation order.
ADJUSTMENT_FIELDS = (
    "floor", "elevator", "renovation", "balcony", "parking",
    "view", "noise", "size", "planning_potential", "ml_residual",
)

# ----- Property observations -----

class PropertyFeatures(BaseModel):
    """Shared shape of a subject and of a sold comparable."""
    model_config = ConfigDict(allow_inf_nan=False)

    id: str
    address: str
    city: str
    neighborhood: str | None = None
    lat: float
    lng: float
    property_type: PropertyType
    size_sqm: float
    floor: float
    total_floors: float | None = None
    building_age: float
    condition_score: float            # 1-10
    has_elevator: bool
    has_parking: bool
    has_balcony: bool
    has_view: bool
    noise_level: float                # 1-10, 10 = noisy
    renovation_state: RenovationState
    planning_potential_score: float   # 0-10

class SubjectPropertyInput(PropertyFeatures):
    """The property being valued. Ranges are enforced here, at the boundary."""
    size_sqm: float = Field(gt=0)
    building_age: float = Field(ge=0)
    condition_score: float = Field(ge=1, le=10)
    noise_level: float = Field(ge=1, le=10)
    planning_potential_score: float = Field(ge=0, le=10)

class PropertyFeaturePayload(PropertyFeatures):
    """One observed sale. Pool entries are trusted to be sane already."""
    model_config = ConfigDict(frozen=True)

    sale_date: datetime
    sale_price: float

# ----- Search / adjustment -----

class ComparableSearchRequest(BaseModel):
    # Instances are re-checked on every engine call, not only dicts.
    model_config = ConfigDict(revalidate_instances="always")

    subject: SubjectPropertyInput
    comparables_pool: list[PropertyFeaturePayload]
    top_k: int | None = Field(default=None, gt=0)

class SimilarityResult(BaseModel):
    comparable: PropertyFeaturePayload
    similarity: float
    distance_meters: float
    explanation: list[str]

class MLAdjustmentWeights(BaseModel):
    """Hand-set linear residual model; not trained."""
    floor: float = 0.004
    elevator: float = 0.025
    renovation: float = 0.03
    balcony: float = 0.012
    parking: float = 0.03
    view: float = 0.018
    noise: float = -0.01
    size: float = -0.002
    planning_potential: float = 0.015
    intercept: float = 0.0

class AdjustmentBreakdown(BaseModel):
    floor: float = 0.0
    elevator: float = 0.0
    renovation: float = 0.0
    balcony: float = 0.0
    parking: float = 0.0
    view: float = 0.0
    noise: float = 0.0
    size: float = 0.0
    planning_potential: float = 0.0
    ml_residual: float = 0.0
    total_percent: float = 0.0
    adjusted_price: int = 0

class ComparableWithAdjustment(SimilarityResult):
    adjustment: AdjustmentBreakdown
    weight: float = Field(ge=0.01, le=1)

# ----- Valuation -----

class ValuationRange(BaseModel):
    low: int
    mid: int
    high: int

class ValuationOutput(BaseModel):
    strategy: Strategy
    range: ValuationRange
    confidence_score: int = Field(ge=0, le=100)
    comparables_used: int
    rejected_outliers: list[str]
    rationale: list[str] = Field(min_length=1)

class ManualOverrideEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    comparable_id: str
    field: str
    old_value: float
    new_value: float
    reason: str
    appraiser_id: str
    timestamp: str

class LifecycleEvent(BaseModel):
    """Creation of runs, valuations and reports, and report finalization."""
    model_config = ConfigDict(frozen=True)

    id: str
    entity_type: Literal["comparable-run", "valuation", "report"]
    entity_id: str
    event_type: Literal["create", "finalize"]
    payload: dict[str, Any]
    created_at: str

AuditEvent = ManualOverrideEvent | LifecycleEvent

# ----- Grounded report -----

class ComparableReportItem(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    id: str
    address: str
    similarity: float = Field(ge=0, le=1)
    distance_meters: float = Field(ge=0)
    sale_date: str
    sale_price: float = Field(gt=0)
    adjusted_price: float = Field(gt=0)
    adjustment_breakdown: dict[str, float]
    explanation: list[str]

class ParsedDocumentFact(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    source_document_id: str
    source_type: Literal["ownership-extract", "permit", "contract", "tabu", "planning"]
    fact_key: str
    fact_value: str | bool | int | float
    confidence: float = Field(ge=0, le=1)
    page: int | None = None
    conflict_with: list[str] | None = None

class ImageEvidence(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    image_id: str
    condition_score: float = Field(ge=1, le=10)
    renovation_level: Literal["high", "medium", "low"]
    detected_issues: list[str]
    evidence_text: str

class StructuredPropertyForReport(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    id: str
    address: str
    city: str
    parcel: str | None = None
    block: str | None = None
    lot: str | None = None
    property_type: str
    area_sqm: float = Field(gt=0)
    floor: float
    rooms: float | None = None
    ownership_type: str | None = None

class ReportTemplateConfig(BaseModel):
    template_id: Literal["default-court-il", "bank-il", "private-client"]
    language: Literal["he", "en"]
    mandatory_sections: list[str]
    optional_sections: list[str]
    tone: Literal["formal", "banking", "technical"]

class ReportValuationRange(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    # Ordering is deliberately not enforced; the consistency validator reports it.
    low: float = Field(ge=0)
    mid: float = Field(ge=0)
    high: float = Field(ge=0)

class GroundedReportInput(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False, revalidate_instances="always")

    property: StructuredPropertyForReport
    comparables: list[ComparableReportItem]
    document_facts: list[ParsedDocumentFact]
    image_evidence: list[ImageEvidence]
    valuation_range: ReportValuationRange
    confidence_score: float = Field(ge=0, le=100)
    template: ReportTemplateConfig

class GroundedPromptBundle(BaseModel):
    system_prompt: str
    user_prompt: str
    json_schema: dict[str, Any]

class GeneratedReportSection(BaseModel):
    section_id: str
    title: str
    markdown: str
    grounded_facts: list[str]

class ValidationResult(BaseModel):
    key: str
    severity: Literal["error", "warning"]
    message: str

class FinalizedReport(BaseModel):
    report_id: str
    version: int
    signature_id: str
    approved_by: str
    approval_comment: str
    approved_at: str

class GeneratedAppraisalReport(BaseModel):
    report_id: str
    version: int
    created_at: str
    sections: list[GeneratedReportSection]
    validations: list[ValidationResult]
    ready_for_final_approval: bool
    finalization: FinalizedReport | None = None

# ----- HTTP bodies -----

class SearchBody(BaseModel):
    subject: SubjectPropertyInput
    # Omitted pool → fetched from the configured comparables provider
    comparables_pool: list[PropertyFeaturePayload] | None = None
    top_k: int | None = Field(default=None, gt=0)
    requested_by: str = "system"

class RunCandidate(ComparableWithAdjustment):
    candidate_id: str

class ComparableRun(BaseModel):
    run_id: str
    created_at: str
    requested_by: str
    elapsed_ms: int
    subject: SubjectPropertyInput
    duplicates_dropped: int = 0
    candidates: list[RunCandidate]

class OverrideBody(BaseModel):
    candidate_id: str = Field(min_length=1)
    patch: dict[str, Any]
    appraiser_id: str = Field(min_length=1)
    reason: str = Field(min_length=1)

class OverrideResponse(BaseModel):
    run_id: str
    candidate_id: str
    adjustment: AdjustmentBreakdown
    events: list[ManualOverrideEvent]

class EstimateBody(BaseModel):
    run_id: str
    strategy: Strategy | None = None

class EstimateResponse(ValuationOutput):
    run_id: str

class ReportFromRunBody(BaseModel):
    run_id: str
    property: StructuredPropertyForReport
    document_facts: list[ParsedDocumentFact] = []
    image_evidence: list[ImageEvidence] = []
    template: ReportTemplateConfig
    strategy: Strategy | None = None

class FinalizeBody(BaseModel):
    appraiser_id: str = Field(min_length=1)
    approval_comment: str = Field(min_length=1)

class AuditEventsResponse(BaseModel):
    count: int
    events: list[AuditEvent]
