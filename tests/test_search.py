import pytest
from pydantic import ValidationError

from appraisal.engine.search import DEFAULT_TOP_K, TYPE_MISMATCH_PENALTY, search_top_comparables
from appraisal.schemas import ComparableSearchRequest, PropertyFeaturePayload

from conftest import payload_dict, pool_dicts, subject_dict


def test_returns_top_k_sorted_by_similarity(subject, pool):
    results = search_top_comparables(
        ComparableSearchRequest(subject=subject, comparables_pool=pool, top_k=8)
    )
    assert len(results) == 8
    scores = [r.similarity for r in results]
    assert scores == sorted(scores, reverse=True)
    assert all(0 <= s <= 1 + 1e-9 for s in scores)


def test_accepts_plain_mapping():
    results = search_top_comparables({
        "subject": subject_dict(),
        "comparables_pool": pool_dicts(5),
    })
    assert len(results) == 5


def test_default_top_k_caps_large_pools():
    results = search_top_comparables({
        "subject": subject_dict(),
        "comparables_pool": pool_dicts(DEFAULT_TOP_K + 5),
    })
    assert len(results) == DEFAULT_TOP_K


def test_empty_pool_gives_empty_result(subject):
    assert search_top_comparables(ComparableSearchRequest(subject=subject, comparables_pool=[])) == []


def test_identical_comparable_scores_one(subject):
    twin = PropertyFeaturePayload.model_validate(payload_dict(id="twin"))
    [result] = search_top_comparables(ComparableSearchRequest(subject=subject, comparables_pool=[twin]))
    assert result.similarity == pytest.approx(1.0)
    assert result.distance_meters == pytest.approx(0.0)
    assert result.explanation == [
        "Very close geo-location",
        "Same property type",
        "Similar built area",
        "Similar floor level",
        "Condition profile is close",
        "Similarity score=100.0%",
    ]


def test_property_type_mismatch_is_penalized(subject):
    same = PropertyFeaturePayload.model_validate(payload_dict(id="same"))
    other = PropertyFeaturePayload.model_validate(payload_dict(id="other", property_type="penthouse"))
    results = search_top_comparables(
        ComparableSearchRequest(subject=subject, comparables_pool=[other, same])
    )
    assert [r.comparable.id for r in results] == ["same", "other"]
    assert results[1].similarity < 1.0 - TYPE_MISMATCH_PENALTY + 1e-9
    assert "Same property type" not in results[1].explanation


def test_far_comparable_gets_no_proximity_reason(subject):
    far = PropertyFeaturePayload.model_validate(payload_dict(id="far", lat=32.2, size_sqm=200, floor=20))
    [result] = search_top_comparables(ComparableSearchRequest(subject=subject, comparables_pool=[far]))
    assert result.distance_meters > 700
    assert result.explanation[0] == "Same property type"
    assert "Similar built area" not in result.explanation
    assert "Similar floor level" not in result.explanation
    assert result.explanation[-1].startswith("Similarity score=")


def test_equal_scores_keep_pool_order(subject):
    first = PropertyFeaturePayload.model_validate(payload_dict(id="first"))
    second = PropertyFeaturePayload.model_validate(payload_dict(id="second"))
    results = search_top_comparables(
        ComparableSearchRequest(subject=subject, comparables_pool=[first, second])
    )
    assert [r.comparable.id for r in results] == ["first", "second"]


@pytest.mark.parametrize("bad_subject", [
    subject_dict(condition_score=11),
    subject_dict(size_sqm=0),
    subject_dict(noise_level=0),
    subject_dict(planning_potential_score=12),
    subject_dict(property_type="castle"),
])
def test_malformed_subject_raises(bad_subject):
    with pytest.raises(ValidationError):
        search_top_comparables({"subject": bad_subject, "comparables_pool": pool_dicts(3)})


@pytest.mark.parametrize("top_k", [0, -3])
def test_non_positive_top_k_raises(top_k):
    with pytest.raises(ValidationError):
        search_top_comparables({"subject": subject_dict(), "comparables_pool": pool_dicts(3), "top_k": top_k})


@pytest.mark.parametrize("field, value", [("lat", float("nan")), ("size_sqm", float("inf"))])
def test_non_finite_subject_is_rejected(field, value):
    with pytest.raises(ValidationError):
        search_top_comparables({"subject": subject_dict(**{field: value}), "comparables_pool": pool_dicts(3)})


@pytest.mark.parametrize("field, value", [("sale_price", float("inf")), ("lng", float("nan"))])
def test_non_finite_pool_entry_is_rejected(field, value):
    pool = pool_dicts(3)
    pool[1][field] = value
    with pytest.raises(ValidationError):
        search_top_comparables({"subject": subject_dict(), "comparables_pool": pool})


def test_mutated_request_is_checked_again(subject, pool):
    request = ComparableSearchRequest(subject=subject, comparables_pool=pool, top_k=5)
    request.top_k = -1
    with pytest.raises(ValidationError):
        search_top_comparables(request)
