"""Shared fixtures for engine, report and API tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest

from appraisal.schemas import (
    AdjustmentBreakdown,
    ComparableWithAdjustment,
    PropertyFeaturePayload,
    SubjectPropertyInput,
)

AS_OF = date(2025, 6, 15)


def subject_dict(**overrides: Any) -> dict[str, Any]:
    data = {
        "id": "subject-1",
        "address": "רחוב המבחן 1",
        "city": "תל אביב-יפו",
        "lat": 32.08,
        "lng": 34.78,
        "property_type": "apartment",
        "size_sqm": 95,
        "floor": 5,
        "building_age": 20,
        "condition_score": 7,
        "has_elevator": True,
        "has_parking": True,
        "has_balcony": True,
        "has_view": False,
        "noise_level": 5,
        "renovation_state": "renovated",
        "planning_potential_score": 4,
    }
    data.update(overrides)
    return data


def payload_dict(**overrides: Any) -> dict[str, Any]:
    """A sold comparable identical to the default subject unless overridden."""
    data = subject_dict(id="comp-x", address="רחוב השוואה 1")
    data.update({"sale_date": "2025-05-01T00:00:00+00:00", "sale_price": 2_000_000})
    data.update(overrides)
    return data


def pool_dicts(n: int = 12) -> list[dict[str, Any]]:
    now = datetime.now(timezone.utc)
    return [
        payload_dict(
            id=f"comp-{i}",
            address=f"רחוב השוואה {i}",
            lat=32.08 + i * 0.0002,
            lng=34.78 + i * 0.0002,
            size_sqm=90 + i,
            floor=4 + (i % 4),
            building_age=18 + (i % 5),
            condition_score=6 + (i % 3),
            has_parking=i % 2 == 0,
            renovation_state="partial" if i % 3 == 0 else "renovated",
            planning_potential_score=3 + (i % 3),
            sale_date=(now - timedelta(days=30 * i)).isoformat(),
            sale_price=2_100_000 + i * 30_000,
        )
        for i in range(n)
    ]


def make_adjusted(
    comp_id: str,
    adjusted_price: int,
    similarity: float = 0.9,
    weight: float = 0.5,
    sale_date: str = "2025-06-01T00:00:00+00:00",
    distance_meters: float = 300.0,
) -> ComparableWithAdjustment:
    return ComparableWithAdjustment(
        comparable=PropertyFeaturePayload.model_validate(
            payload_dict(id=comp_id, sale_price=adjusted_price, sale_date=sale_date)
        ),
        similarity=similarity,
        distance_meters=distance_meters,
        explanation=[],
        adjustment=AdjustmentBreakdown(adjusted_price=adjusted_price),
        weight=weight,
    )


@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def subject() -> SubjectPropertyInput:
    return SubjectPropertyInput.model_validate(subject_dict())


@pytest.fixture
def pool() -> list[PropertyFeaturePayload]:
    return [PropertyFeaturePayload.model_validate(p) for p in pool_dicts()]


@pytest.fixture
def report_input() -> dict[str, Any]:
    today = datetime.now(timezone.utc).isoformat()
    return {
        "property": {
            "id": "p-1",
            "address": "דרך השלום 10",
            "city": "תל אביב-יפו",
            "property_type": "apartment",
            "area_sqm": 100,
            "floor": 7,
        },
        "comparables": [
            {
                "id": "c-1",
                "address": "השוואה 1",
                "similarity": 0.92,
                "distance_meters": 280,
                "sale_date": today,
                "sale_price": 2_800_000,
                "adjusted_price": 2_760_000,
                "adjustment_breakdown": {"floor": 0.01, "parking": 0.02},
                "explanation": ["close", "same type"],
            },
            {
                "id": "c-2",
                "address": "השוואה 2",
                "similarity": 0.88,
                "distance_meters": 540,
                "sale_date": today,
                "sale_price": 2_720_000,
                "adjusted_price": 2_740_000,
                "adjustment_breakdown": {"floor": -0.01, "parking": 0},
                "explanation": ["similar area"],
            },
            {
                "id": "c-3",
                "address": "השוואה 3",
                "similarity": 0.86,
                "distance_meters": 620,
                "sale_date": today,
                "sale_price": 2_680_000,
                "adjusted_price": 2_700_000,
                "adjustment_breakdown": {"floor": 0.01, "parking": 0.01},
                "explanation": ["recent"],
            },
        ],
        "document_facts": [
            {
                "source_document_id": "doc-1",
                "source_type": "permit",
                "fact_key": "permit_status",
                "fact_value": "valid",
                "confidence": 0.99,
            },
        ],
        "image_evidence": [
            {
                "image_id": "img-1",
                "condition_score": 7,
                "renovation_level": "medium",
                "detected_issues": ["paint"],
                "evidence_text": "Paint wear on interior wall.",
            },
        ],
        "valuation_range": {"low": 2_650_000, "mid": 2_730_000, "high": 2_810_000},
        "confidence_score": 82,
        "template": {
            "template_id": "default-court-il",
            "language": "he",
            "mandatory_sections": ["subject", "comparables-analysis", "valuation-conclusion"],
            "optional_sections": ["condition-evidence"],
            "tone": "formal",
        },
    }
