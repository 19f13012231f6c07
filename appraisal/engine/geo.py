"""Geo and feature-space helpers shared by the search and adjustment steps."""

import math
import re
from datetime import date, datetime, timezone
from typing import Sequence

import numpy as np

from ..core.utils import clamp, round_half_up
from ..schemas import PropertyFeaturePayload, PropertyFeatures

EARTH_RADIUS_M = 6_371_000

# Ordinal closeness of property types, not a learned embedding.
PROPERTY_TYPE_EMBEDDING = {
    "house": 1.0,
    "penthouse": 0.9,
    "garden-apartment": 0.75,
    "duplex": 0.65,
    "apartment": 0.2,
    "commercial": 0.0,
}

RENOVATION_EMBEDDING = {
    "new": 1.0,
    "renovated": 0.8,
    "partial": 0.45,
    "needs-renovation": 0.1,
}

FEATURE_VECTOR_SIZE = 14

# Street-type abbreviations: the bare token or the token followed by a quote/period.
_STREET_ABBREVIATIONS = (
    (re.compile(r"(?<!\w)רח(?:['׳\".]\s*|\s+|$)"), "רחוב "),
    (re.compile(r"(?<!\w)שד(?:['׳\".]\s*|\s+|$)"), "שדרות "),
)
_QUOTES = re.compile(r"[\"'`׳״]")
_SPACES = re.compile(r"\s+")

def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))

def normalize_israeli_address(address: str) -> str:
    """
    Canonical form used for duplicate fingerprints only:
    - trim + lowercase
    - expand רח' / שד' to רחוב / שדרות
    - drop quote characters
    - collapse whitespace
    """
    out = address.strip().lower()
    for pattern, replacement in _STREET_ABBREVIATIONS:
        out = pattern.sub(replacement, out)
    out = _QUOTES.sub("", out)
    return _SPACES.sub(" ", out).strip()

def _utc_day(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date().isoformat()

def duplicate_fingerprint(payload: PropertyFeaturePayload) -> str:
    """Same fingerprint ⇒ same underlying transaction."""
    return "|".join(str(part) for part in (
        normalize_israeli_address(payload.address),
        payload.city.strip().lower(),
        round_half_up(payload.lat * 10_000),
        round_half_up(payload.lng * 10_000),
        _utc_day(payload.sale_date),
        round_half_up(payload.sale_price / 1_000),
        round_half_up(payload.size_sqm),
    ))

def normalized(value: float, low: float, high: float) -> float:
    if high <= low:
        return 0.0
    return clamp((value - low) / (high - low), 0.0, 1.0)

def to_feature_vector(prop: PropertyFeatures) -> np.ndarray:
    """Fixed-order numeric vector; out-of-range inputs are clamped."""
    return np.array([
        prop.lat,
        prop.lng,
        PROPERTY_TYPE_EMBEDDING[prop.property_type],
        normalized(prop.size_sqm, 20, 300),
        normalized(prop.floor, -1, 60),
        normalized(prop.building_age, 0, 120),
        normalized(prop.condition_score, 1, 10),
        float(prop.has_elevator),
        float(prop.has_parking),
        float(prop.has_balcony),
        float(prop.has_view),
        normalized(prop.noise_level, 1, 10),
        RENOVATION_EMBEDDING[prop.renovation_state],
        normalized(prop.planning_potential_score, 0, 10),
    ], dtype="float64")

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """0.0 when lengths differ or either vector carries no signal."""
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))

def months_since(sale_date: datetime, as_of: date | None = None) -> int:
    """Calendar months between the sale and `as_of` (today, UTC), never negative."""
    ref = as_of or datetime.now(timezone.utc).date()
    if sale_date.tzinfo is not None:
        sale_date = sale_date.astimezone(timezone.utc)
    months = (ref.year - sale_date.year) * 12 + ref.month - sale_date.month
    return max(0, months)
