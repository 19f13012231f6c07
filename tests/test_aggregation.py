import pytest

from appraisal.engine.aggregation import (
    EMPTY_NOTE,
    RANGE_NOTE,
    STRATEGIES,
    confidence_score,
    hedonic_like_estimate,
    percentile,
    remove_price_outliers,
    stddev,
    valuate_from_comparables,
    weighted_mean,
)

from conftest import AS_OF, make_adjusted


@pytest.fixture
def spiky():
    """Three tight prices, one far above and one far below."""
    return [
        make_adjusted("c-1", 1_000_000),
        make_adjusted("c-2", 1_010_000),
        make_adjusted("c-3", 1_020_000),
        make_adjusted("c-high", 3_000_000),
        make_adjusted("c-low", 100_000),
    ]


def test_percentile_interpolates_linearly():
    values = [1_000_000, 1_010_000, 1_020_000, 3_000_000, 100_000]
    assert percentile(values, 0.25) == 1_000_000
    assert percentile(values, 0.75) == 1_020_000
    assert percentile([1, 2, 3, 4], 0.5) == 2.5
    assert percentile([], 0.5) == 0.0


def test_weighted_mean_falls_back_to_plain_mean():
    assert weighted_mean([1, 3], [0, 0]) == 2
    assert weighted_mean([1, 3], [3, 1]) == 1.5
    assert weighted_mean([], []) == 0.0


def test_stddev_is_population_based():
    assert stddev([5]) == 0.0
    assert stddev([2, 4, 4, 4, 5, 5, 7, 9]) == 2.0


def test_iqr_fence_rejects_both_tails(spiky):
    filtered, rejected = remove_price_outliers(spiky)
    assert [x.comparable.id for x in filtered] == ["c-1", "c-2", "c-3"]
    assert rejected == ["c-high", "c-low"]


def test_outlier_filter_is_idempotent_here(spiky):
    filtered, _ = remove_price_outliers(spiky)
    again, rejected = remove_price_outliers(filtered)
    assert again == filtered
    assert rejected == []


def test_small_sets_are_not_filtered():
    items = [make_adjusted("a", 1_000_000), make_adjusted("b", 9_000_000)]
    filtered, rejected = remove_price_outliers(items)
    assert filtered == items
    assert rejected == []


def test_filter_thresholds_are_tunable(spiky):
    filtered, rejected = remove_price_outliers(spiky, min_items=10)
    assert len(filtered) == 5 and rejected == []
    filtered, rejected = remove_price_outliers(spiky, iqr_multiplier=200)
    assert rejected == []


def test_valuation_after_outlier_removal(spiky):
    out = valuate_from_comparables(spiky, "mean", as_of=AS_OF)
    assert out.comparables_used == 3
    assert out.rejected_outliers == ["c-high", "c-low"]
    assert out.range.mid == 1_010_000
    assert out.range.low <= out.range.mid <= out.range.high
    assert out.rationale == [
        "3 comparables used after outlier filtering",
        "Dispersion=0.8%",
        "Strategy=mean",
        RANGE_NOTE,
    ]


def test_mean_range_uses_dispersion_spread():
    items = [make_adjusted("a", 1_000_000), make_adjusted("b", 1_100_000), make_adjusted("c", 1_200_000)]
    out = valuate_from_comparables(items, "mean", as_of=AS_OF)
    assert (out.range.low, out.range.mid, out.range.high) == (974_350, 1_100_000, 1_225_650)


def test_tight_prices_get_minimum_spread():
    items = [make_adjusted(f"c{i}", 2_000_000) for i in range(3)]
    out = valuate_from_comparables(items, "mean", as_of=AS_OF)
    assert (out.range.low, out.range.mid, out.range.high) == (1_900_000, 2_000_000, 2_100_000)


def test_weighted_mean_strategy():
    items = [make_adjusted("a", 1_000_000, weight=0.75), make_adjusted("b", 2_000_000, weight=0.25)]
    out = valuate_from_comparables(items, "weighted-mean", as_of=AS_OF)
    assert out.range.mid == 1_250_000
    assert out.strategy == "weighted-mean"


def test_hedonic_blends_weighted_mean_and_median():
    items = [
        make_adjusted("a", 1_000_000, weight=1),
        make_adjusted("b", 1_100_000, weight=1),
        make_adjusted("c", 1_400_000, weight=0.5),
    ]
    assert hedonic_like_estimate(items) == pytest.approx(1_111_000)
    assert valuate_from_comparables(items, "hedonic", as_of=AS_OF).range.mid == 1_111_000


def test_two_comparables_pass_through_unfiltered():
    items = [make_adjusted("a", 1_000_000), make_adjusted("b", 4_000_000)]
    out = valuate_from_comparables(items, "mean", as_of=AS_OF)
    assert out.comparables_used == 2
    assert out.rejected_outliers == []


def test_no_comparables_gives_zero_range():
    out = valuate_from_comparables([], "weighted-mean")
    assert (out.range.low, out.range.mid, out.range.high) == (0, 0, 0)
    assert out.confidence_score == 0
    assert out.comparables_used == 0
    assert out.rationale == [EMPTY_NOTE]


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_range_is_ordered_for_every_strategy(strategy, spiky):
    out = valuate_from_comparables(spiky, strategy, as_of=AS_OF)
    assert out.range.low <= out.range.mid <= out.range.high
    assert 0 <= out.confidence_score <= 100


def test_unknown_strategy_is_rejected(spiky):
    with pytest.raises(ValueError):
        valuate_from_comparables(spiky, "median", as_of=AS_OF)


def test_confidence_peaks_with_many_close_recent_identical_sales():
    items = [make_adjusted(f"c{i}", 2_000_000, similarity=1.0) for i in range(12)]
    assert confidence_score(items, 0.0, as_of=AS_OF) == 100


def test_confidence_drops_with_stale_dissimilar_sales():
    fresh = [make_adjusted(f"c{i}", 2_000_000, similarity=0.95) for i in range(6)]
    stale = [
        make_adjusted(f"s{i}", 2_000_000, similarity=0.4, sale_date="2019-01-01T00:00:00+00:00")
        for i in range(6)
    ]
    assert confidence_score(stale, 0.15, as_of=AS_OF) < confidence_score(fresh, 0.0, as_of=AS_OF)
    assert confidence_score([], 0.0) == 0


def test_confidence_weights_are_overridable():
    items = [make_adjusted(f"c{i}", 2_000_000, similarity=0.5) for i in range(12)]
    only_similarity = {"count": 0, "similarity": 1, "recency": 0, "dispersion": 0}
    assert confidence_score(items, 0.0, weights=only_similarity, as_of=AS_OF) == 50
