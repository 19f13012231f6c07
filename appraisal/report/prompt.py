"""Prompt bundle for the external report-writing LLM.

Only builds the prompt; submitting it and trusting the answer is the
caller's business.
"""

import copy
from typing import Any, Mapping

from ..schemas import GroundedPromptBundle, GroundedReportInput

MAX_COMPARABLE_LINES = 20
MAX_DOCUMENT_LINES = 100
MAX_IMAGE_LINES = 30

GUARDRAILS = (
    "Use grounded data only. Never invent addresses, comparables, legal facts, or measurements.",
    'If data is missing, explicitly state: "חסר מידע מאומת" (missing verified data) in Hebrew reports, '
    'or "missing verified data" in English reports.',
    "Cite source facts by source_document_id or comparable id in each section.",
    "Output strict JSON only according to schema.",
    "Professional appraisal tone suitable for court and bank review.",
)

REPORT_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["sections", "summary", "assumptions", "limitations"],
    "properties": {
        "summary": {"type": "string"},
        "assumptions": {"type": "array", "items": {"type": "string"}},
        "limitations": {"type": "array", "items": {"type": "string"}},
        "sections": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["section_id", "title", "markdown", "grounded_facts"],
                "properties": {
                    "section_id": {"type": "string"},
                    "title": {"type": "string"},
                    "markdown": {"type": "string"},
                    "grounded_facts": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
    },
}

def fmt_value(value: Any) -> str:
    """Render numbers without a trailing .0 and booleans in lowercase."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)

def build_fact_table(report: GroundedReportInput) -> str:
    prop = report.property
    lines = [f"PROPERTY|{prop.id}|{prop.address}|area={fmt_value(prop.area_sqm)}|floor={fmt_value(prop.floor)}"]
    lines += [
        f"COMP|{c.id}|{c.address}|sim={fmt_value(c.similarity)}|sale={fmt_value(c.sale_price)}"
        f"|adj={fmt_value(c.adjusted_price)}|dist={fmt_value(c.distance_meters)}"
        for c in report.comparables[:MAX_COMPARABLE_LINES]
    ]
    lines += [
        f"DOC|{f.source_document_id}|{f.source_type}|{f.fact_key}={fmt_value(f.fact_value)}"
        f"|conf={fmt_value(f.confidence)}"
        for f in report.document_facts[:MAX_DOCUMENT_LINES]
    ]
    lines += [
        f"IMG|{x.image_id}|condition={fmt_value(x.condition_score)}|renovation={x.renovation_level}"
        f"|issues={';'.join(x.detected_issues)}"
        for x in report.image_evidence[:MAX_IMAGE_LINES]
    ]
    return "\n".join(lines)

def build_grounded_prompt_bundle(payload: GroundedReportInput | Mapping[str, Any]) -> GroundedPromptBundle:
    report = GroundedReportInput.model_validate(payload)
    template = report.template
    value = report.valuation_range

    system_prompt = "You are a certified appraisal report writing assistant for Israel.\n" + "\n".join(GUARDRAILS)
    user_prompt = "\n\n".join([
        f"Template: {template.template_id} ({template.language})",
        f"Tone: {template.tone}",
        f"Mandatory sections: {', '.join(template.mandatory_sections)}",
        f"Optional sections: {', '.join(template.optional_sections)}",
        f"Valuation range (NIS): low={fmt_value(value.low)}, mid={fmt_value(value.mid)}, high={fmt_value(value.high)}",
        f"Confidence: {fmt_value(report.confidence_score)}",
        "Grounded facts dataset:",
        build_fact_table(report),
    ])
    return GroundedPromptBundle(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        json_schema=copy.deepcopy(REPORT_JSON_SCHEMA),
    )
