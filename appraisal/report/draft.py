"""Template-driven report draft: no LLM, every line traceable to an input record."""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from ..core.utils import format_nis
from ..schemas import (
    GeneratedAppraisalReport,
    GeneratedReportSection,
    GroundedReportInput,
    ParsedDocumentFact,
)
from .prompt import fmt_value
from .validation import has_conflicts, validate_report_consistency

logger = logging.getLogger(__name__)

VALUATION_GROUNDING_COMPARABLES = 5
MAX_COMPARABLE_ROWS = 10
MAX_IMAGE_ROWS = 8

TITLES = {
    "valuation-conclusion": {"he": "מסקנת שווי", "en": "Valuation Conclusion"},
    "comparables-analysis": {"he": "ניתוח עסקאות השוואה", "en": "Comparable Analysis"},
    "legal-risks": {"he": "סיכונים משפטיים", "en": "Legal Risks"},
    "condition-evidence": {"he": "מצב פיזי וראיות חזותיות", "en": "Condition & Visual Evidence"},
}

def _valuation_section(report: GroundedReportInput, lang: str) -> GeneratedReportSection:
    value = report.valuation_range
    confidence = fmt_value(report.confidence_score)
    if lang == "he":
        markdown = (
            f"טווח השווי המוערך: {format_nis(value.low)} - {format_nis(value.high)}.\n"
            f"שווי אמצעי: {format_nis(value.mid)}.\n"
            f"רמת ביטחון: {confidence}%."
        )
    else:
        markdown = (
            f"Estimated value range: {format_nis(value.low)} - {format_nis(value.high)}. "
            f"Mid: {format_nis(value.mid)}. Confidence: {confidence}%."
        )
    return GeneratedReportSection(
        section_id="valuation-conclusion",
        title=TITLES["valuation-conclusion"][lang],
        markdown=markdown,
        grounded_facts=[f"property:{report.property.id}"] + [
            f"comparable:{c.id}" for c in report.comparables[:VALUATION_GROUNDING_COMPARABLES]
        ],
    )

def _comparables_section(report: GroundedReportInput, lang: str) -> GeneratedReportSection:
    top = report.comparables[:MAX_COMPARABLE_ROWS]
    return GeneratedReportSection(
        section_id="comparables-analysis",
        title=TITLES["comparables-analysis"][lang],
        markdown="\n".join(
            f"{i}. {c.address} | similarity={c.similarity * 100:.1f}% | adjusted={format_nis(c.adjusted_price)}"
            for i, c in enumerate(top, start=1)
        ),
        grounded_facts=[f"comparable:{c.id}" for c in top],
    )

def legal_risk_lines(facts: list[ParsedDocumentFact], lang: str) -> list[str]:
    conflicts = [f for f in facts if has_conflicts(f)]
    if not conflicts:
        if lang == "he":
            return ["- לא זוהו סתירות משפטיות מהותיות במסמכים שסופקו."]
        return ["- No material legal inconsistencies were detected in provided documents."]
    if lang == "he":
        return [
            f"- התגלתה סתירה בעובדה {f.fact_key} (מקור: {f.source_document_id}). נדרשת בדיקה אנושית."
            for f in conflicts
        ]
    return [
        f"- Conflict detected for fact {f.fact_key} (source: {f.source_document_id}). Manual review required."
        for f in conflicts
    ]

def _legal_section(report: GroundedReportInput, lang: str) -> GeneratedReportSection:
    return GeneratedReportSection(
        section_id="legal-risks",
        title=TITLES["legal-risks"][lang],
        markdown="\n".join(legal_risk_lines(report.document_facts, lang)),
        grounded_facts=[f"{f.source_document_id}:{f.fact_key}" for f in report.document_facts],
    )

def _condition_section(report: GroundedReportInput, lang: str) -> GeneratedReportSection:
    return GeneratedReportSection(
        section_id="condition-evidence",
        title=TITLES["condition-evidence"][lang],
        markdown="\n".join(
            f"- [{x.image_id}] score={fmt_value(x.condition_score)}/10, renovation={x.renovation_level}, "
            f"issues={', '.join(x.detected_issues) or 'none'}"
            for x in report.image_evidence[:MAX_IMAGE_ROWS]
        ),
        grounded_facts=[f"image:{x.image_id}" for x in report.image_evidence],
    )

def generate_deterministic_report_draft(
    payload: GroundedReportInput | Mapping[str, Any],
    now: datetime | None = None,
) -> GeneratedAppraisalReport:
    """Baseline report with four fixed sections plus the consistency findings."""
    report = GroundedReportInput.model_validate(payload)
    lang = report.template.language
    created = now or datetime.now(timezone.utc)

    sections = [
        _valuation_section(report, lang),
        _comparables_section(report, lang),
        _legal_section(report, lang),
        _condition_section(report, lang),
    ]
    validations = validate_report_consistency(report)
    ready = all(v.severity != "error" for v in validations)
    logger.debug("draft for %s: %d validation finding(s), ready=%s", report.property.id, len(validations), ready)

    return GeneratedAppraisalReport(
        report_id=f"report-{report.property.id}-{int(created.timestamp() * 1000)}",
        version=1,
        created_at=created.isoformat(),
        sections=sections,
        validations=validations,
        ready_for_final_approval=ready,
    )
