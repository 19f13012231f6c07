"""
Per-comparable price adjustments.

Every factor is a function of the signed subject-minus-comparable delta,
scaled by a fixed rate and clamped to a fixed band. The factors plus the
linear residual term are summed, the sum is clamped, and the comparable's
sale price is scaled by it.
"""

import logging
from datetime import date
from typing import Mapping

from ..core.utils import clamp, round_half_up
from ..schemas import (
    ADJUSTMENT_FIELDS,
    AdjustmentBreakdown,
    ComparableWithAdjustment,
    MLAdjustmentWeights,
    PropertyFeatures,
    SimilarityResult,
)
from .geo import RENOVATION_EMBEDDING, months_since

logger = logging.getLogger(__name__)

DEFAULT_ML_WEIGHTS = MLAdjustmentWeights()

TOTAL_PERCENT_BAND = 0.25

FLOOR_RATE, FLOOR_BAND = 0.004, 0.08
ELEVATOR_STEP = 0.025
RENOVATION_RATE, RENOVATION_BAND = 0.07, 0.12
BALCONY_STEP = 0.012
PARKING_STEP = 0.03
VIEW_STEP = 0.018
NOISE_RATE, NOISE_BAND = 0.01, 0.05
SIZE_RATE, SIZE_BAND = 0.02, 0.08
PLANNING_RATE, PLANNING_BAND = 0.01, 0.06

# Composite weight: similarity, proximity, recency
WEIGHT_SIMILARITY, WEIGHT_DISTANCE, WEIGHT_RECENCY = 0.65, 0.2, 0.15
DISTANCE_HORIZON_M = 4000
RECENCY_HORIZON_MONTHS = 36
MIN_WEIGHT, MAX_WEIGHT = 0.01, 1.0

def bool_diff(subject_has: bool, comparable_has: bool) -> int:
    if subject_has == comparable_has:
        return 0
    return 1 if subject_has else -1

def compose_adjustment(sale_price: float, factors: Mapping[str, float]) -> AdjustmentBreakdown:
    """Sum the ten factors, clamp the total, and derive the adjusted price from it."""
    total = clamp(sum(factors[name] for name in ADJUSTMENT_FIELDS), -TOTAL_PERCENT_BAND, TOTAL_PERCENT_BAND)
    return AdjustmentBreakdown(
        **{name: factors[name] for name in ADJUSTMENT_FIELDS},
        total_percent=total,
        adjusted_price=round_half_up(sale_price * (1 + total)),
    )

def comparable_weight(similarity: float, distance_meters: float, months_ago: float) -> float:
    distance_penalty = clamp(distance_meters / DISTANCE_HORIZON_M, 0, 1)
    recency_penalty = clamp(months_ago / RECENCY_HORIZON_MONTHS, 0, 1)
    raw = (
        similarity * WEIGHT_SIMILARITY
        + (1 - distance_penalty) * WEIGHT_DISTANCE
        + (1 - recency_penalty) * WEIGHT_RECENCY
    )
    return clamp(raw, MIN_WEIGHT, MAX_WEIGHT)

def apply_adjustments(
    subject: PropertyFeatures,
    candidate: SimilarityResult,
    ml_weights: MLAdjustmentWeights = DEFAULT_ML_WEIGHTS,
    as_of: date | None = None,
) -> ComparableWithAdjustment:
    c = candidate.comparable

    d_floor = subject.floor - c.floor
    d_renovation = RENOVATION_EMBEDDING[subject.renovation_state] - RENOVATION_EMBEDDING[c.renovation_state]
    d_size = subject.size_sqm - c.size_sqm
    d_planning = subject.planning_potential_score - c.planning_potential_score
    elevator = bool_diff(subject.has_elevator, c.has_elevator)
    balcony = bool_diff(subject.has_balcony, c.has_balcony)
    parking = bool_diff(subject.has_parking, c.has_parking)
    view = bool_diff(subject.has_view, c.has_view)

    ml_residual = (
        ml_weights.intercept
        + ml_weights.floor * d_floor
        + ml_weights.elevator * elevator
        + ml_weights.renovation * d_renovation
        + ml_weights.balcony * balcony
        + ml_weights.parking * parking
        + ml_weights.view * view
        + ml_weights.noise * (subject.noise_level - c.noise_level)
        + ml_weights.size * d_size
        + ml_weights.planning_potential * d_planning
    )

    factors = {
        "floor": clamp(d_floor * FLOOR_RATE, -FLOOR_BAND, FLOOR_BAND),
        "elevator": elevator * ELEVATOR_STEP,
        "renovation": clamp(d_renovation * RENOVATION_RATE, -RENOVATION_BAND, RENOVATION_BAND),
        "balcony": balcony * BALCONY_STEP,
        "parking": parking * PARKING_STEP,
        "view": view * VIEW_STEP,
        # Noisier comparable ⇒ subject is worth more
        "noise": clamp((c.noise_level - subject.noise_level) * NOISE_RATE, -NOISE_BAND, NOISE_BAND),
        "size": clamp(d_size / 100 * SIZE_RATE, -SIZE_BAND, SIZE_BAND),
        "planning_potential": clamp(d_planning * PLANNING_RATE, -PLANNING_BAND, PLANNING_BAND),
        "ml_residual": ml_residual,
    }
    adjustment = compose_adjustment(c.sale_price, factors)
    weight = comparable_weight(candidate.similarity, candidate.distance_meters, months_since(c.sale_date, as_of))
    logger.debug("adjusted %s: total=%.4f price=%d", c.id, adjustment.total_percent, adjustment.adjusted_price)

    return ComparableWithAdjustment(
        comparable=c,
        similarity=candidate.similarity,
        distance_meters=candidate.distance_meters,
        explanation=list(candidate.explanation),
        adjustment=adjustment,
        weight=weight,
    )
