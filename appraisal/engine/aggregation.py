import logging
from datetime import date
from typing import Mapping, NamedTuple, Sequence

import numpy as np

from ..core.utils import clamp, round_half_up
from ..schemas import ComparableWithAdjustment, Strategy, ValuationOutput, ValuationRange
from .geo import months_since

logger = logging.getLogger(__name__)

STRATEGIES = ("mean", "weighted-mean", "hedonic")

# Policy defaults; no external source, kept to preserve behavior.
OUTLIER_MIN_ITEMS = 4
IQR_MULTIPLIER = 1.5
CONFIDENCE_WEIGHTS = {"count": 0.25, "similarity": 0.35, "recency": 0.2, "dispersion": 0.2}
FULL_COUNT = 12
RECENCY_HORIZON_MONTHS = 36
DISPERSION_CEILING = 0.2

HEDONIC_WEIGHTED_SHARE = 0.55
HEDONIC_MEDIAN_SHARE = 0.45
SPREAD_BASE, SPREAD_MIN, SPREAD_MAX = 0.04, 0.05, 0.18

RANGE_NOTE = "Final value is a range (court-safe) and not a single point estimate"
EMPTY_NOTE = "No valid comparables after outlier removal"

class OutlierFilterResult(NamedTuple):
    filtered: list[ComparableWithAdjustment]
    rejected_ids: list[str]

def percentile(values: Sequence[float], p: float) -> float:
    """Linear interpolation at index (n-1)*p of the sorted values."""
    if len(values) == 0:
        return 0.0
    return float(np.percentile(np.asarray(values, dtype="float64"), p * 100, method="linear"))

def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))

def weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    total_weight = float(np.sum(weights))
    if total_weight <= 0:
        return mean(values)
    return float(np.dot(values, weights) / total_weight)

def stddev(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) <= 1:
        return 0.0
    return float(np.std(values))

def remove_price_outliers(
    items: Sequence[ComparableWithAdjustment],
    min_items: int = OUTLIER_MIN_ITEMS,
    iqr_multiplier: float = IQR_MULTIPLIER,
) -> OutlierFilterResult:
    """Tukey fence over adjusted prices. Below `min_items` nothing is rejected."""
    if len(items) < min_items:
        return OutlierFilterResult(list(items), [])

    prices = [x.adjustment.adjusted_price for x in items]
    q1 = percentile(prices, 0.25)
    q3 = percentile(prices, 0.75)
    iqr = q3 - q1
    min_allowed = q1 - iqr_multiplier * iqr
    max_allowed = q3 + iqr_multiplier * iqr

    filtered, rejected = [], []
    for item in items:
        if min_allowed <= item.adjustment.adjusted_price <= max_allowed:
            filtered.append(item)
        else:
            rejected.append(item.comparable.id)
    if rejected:
        logger.debug("IQR fence [%.0f, %.0f] rejected %s", min_allowed, max_allowed, rejected)
    return OutlierFilterResult(filtered, rejected)

def hedonic_like_estimate(items: Sequence[ComparableWithAdjustment]) -> float:
    prices = [x.adjustment.adjusted_price for x in items]
    weighted = weighted_mean(prices, [x.weight for x in items])
    return HEDONIC_WEIGHTED_SHARE * weighted + HEDONIC_MEDIAN_SHARE * percentile(prices, 0.5)

def confidence_score(
    items: Sequence[ComparableWithAdjustment],
    dispersion: float,
    weights: Mapping[str, float] = CONFIDENCE_WEIGHTS,
    as_of: date | None = None,
) -> int:
    if not items:
        return 0
    n_factor = clamp(len(items) / FULL_COUNT, 0, 1)
    sim_factor = mean([x.similarity for x in items])
    recency_factor = 1 - mean([
        clamp(months_since(x.comparable.sale_date, as_of) / RECENCY_HORIZON_MONTHS, 0, 1) for x in items
    ])
    dispersion_factor = 1 - clamp(dispersion / DISPERSION_CEILING, 0, 1)
    raw = (
        n_factor * weights["count"]
        + sim_factor * weights["similarity"]
        + recency_factor * weights["recency"]
        + dispersion_factor * weights["dispersion"]
    )
    return int(clamp(round_half_up(raw * 100), 0, 100))

def valuate_from_comparables(
    adjusted_comparables: Sequence[ComparableWithAdjustment],
    strategy: Strategy,
    min_items: int = OUTLIER_MIN_ITEMS,
    iqr_multiplier: float = IQR_MULTIPLIER,
    confidence_weights: Mapping[str, float] = CONFIDENCE_WEIGHTS,
    as_of: date | None = None,
) -> ValuationOutput:
    """
    Outlier-filter the adjusted comparables and aggregate them into a value range.

    Zero survivors is a valid result: a zero range with confidence 0 and a
    rationale line saying so.
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy {strategy!r}; expected one of {', '.join(STRATEGIES)}")

    filtered, rejected_ids = remove_price_outliers(adjusted_comparables, min_items, iqr_multiplier)
    prices = [x.adjustment.adjusted_price for x in filtered]

    if not prices:
        return ValuationOutput(
            strategy=strategy,
            range=ValuationRange(low=0, mid=0, high=0),
            confidence_score=0,
            comparables_used=0,
            rejected_outliers=rejected_ids,
            rationale=[EMPTY_NOTE],
        )

    if strategy == "mean":
        mid = round_half_up(mean(prices))
    elif strategy == "weighted-mean":
        mid = round_half_up(weighted_mean(prices, [x.weight for x in filtered]))
    else:
        mid = round_half_up(hedonic_like_estimate(filtered))

    dispersion = stddev(prices) / max(1, mid)
    spread = clamp(SPREAD_BASE + dispersion, SPREAD_MIN, SPREAD_MAX)
    value_range = ValuationRange(
        low=round_half_up(mid * (1 - spread)),
        mid=mid,
        high=round_half_up(mid * (1 + spread)),
    )

    return ValuationOutput(
        strategy=strategy,
        range=value_range,
        confidence_score=confidence_score(filtered, dispersion, confidence_weights, as_of),
        comparables_used=len(filtered),
        rejected_outliers=rejected_ids,
        rationale=[
            f"{len(filtered)} comparables used after outlier filtering",
            f"Dispersion={dispersion * 100:.1f}%",
            f"Strategy={strategy}",
            RANGE_NOTE,
        ],
    )
