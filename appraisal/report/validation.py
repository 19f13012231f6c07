from typing import Any, Mapping

from ..schemas import GroundedReportInput, ParsedDocumentFact, ValidationResult

MIN_COMPARABLES = 3
MAX_MID_DIVERGENCE = 0.20
MIN_CONFIDENCE = 55

def has_conflicts(fact: ParsedDocumentFact) -> bool:
    return bool(fact.conflict_with)

def validate_report_consistency(payload: GroundedReportInput | Mapping[str, Any]) -> list[ValidationResult]:
    """
    Independent consistency checks over a report input. Every check runs;
    only "error" results block final approval.
    """
    report = GroundedReportInput.model_validate(payload)
    value = report.valuation_range
    results = []

    if not (value.low <= value.mid <= value.high):
        results.append(ValidationResult(
            key="valuation.range.order",
            severity="error",
            message="Valuation range ordering is invalid (low <= mid <= high must hold).",
        ))

    if len(report.comparables) < MIN_COMPARABLES:
        results.append(ValidationResult(
            key="comparables.minimum",
            severity="warning",
            message="Fewer than 3 comparables were used. Confidence should be treated as limited.",
        ))

    adjusted = [c.adjusted_price for c in report.comparables]
    avg_adjusted = sum(adjusted) / len(adjusted) if adjusted else 0.0
    if avg_adjusted > 0 and abs(value.mid - avg_adjusted) / avg_adjusted > MAX_MID_DIVERGENCE:
        results.append(ValidationResult(
            key="valuation.vs-adjusted.spread",
            severity="warning",
            message="Mid valuation differs by more than 20% from mean adjusted comparable value.",
        ))

    conflicting = [f for f in report.document_facts if has_conflicts(f)]
    if conflicting:
        results.append(ValidationResult(
            key="docs.conflicts",
            severity="error",
            message=f"Detected {len(conflicting)} conflicting legal/document facts. Manual review required.",
        ))

    if report.confidence_score < MIN_CONFIDENCE:
        results.append(ValidationResult(
            key="valuation.low-confidence",
            severity="warning",
            message="Confidence score is below 55. Report should include an explicit reliability caveat.",
        ))

    return results
