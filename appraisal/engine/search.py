import logging
from typing import Any, Mapping

from ..schemas import (
    ComparableSearchRequest,
    PropertyFeaturePayload,
    PropertyFeatures,
    SimilarityResult,
)
from .geo import cosine_similarity, haversine_meters, to_feature_vector

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 25
TYPE_MISMATCH_PENALTY = 0.12

# Explanation thresholds
VERY_CLOSE_METERS = 700
SIMILAR_SIZE_SQM = 15
SIMILAR_FLOOR_DELTA = 2
SIMILAR_CONDITION_DELTA = 2

def search_top_comparables(
    request: ComparableSearchRequest | Mapping[str, Any],
) -> list[SimilarityResult]:
    """
    Rank a comparable pool against the subject and keep the best `top_k`.

    The request is validated first; a malformed subject or top_k raises
    pydantic.ValidationError before anything is computed.
    """
    req = ComparableSearchRequest.model_validate(request)
    top_k = req.top_k or DEFAULT_TOP_K
    subject = req.subject
    subject_vector = to_feature_vector(subject)

    results = []
    for comparable in req.comparables_pool:
        distance = haversine_meters(subject.lat, subject.lng, comparable.lat, comparable.lng)
        penalty = 0.0 if comparable.property_type == subject.property_type else TYPE_MISMATCH_PENALTY
        similarity = max(0.0, cosine_similarity(subject_vector, to_feature_vector(comparable)) - penalty)
        results.append(SimilarityResult(
            comparable=comparable,
            similarity=similarity,
            distance_meters=distance,
            explanation=explain_similarity(subject, comparable, similarity, distance),
        ))

    # Stable sort keeps pool order among equal scores
    results.sort(key=lambda r: r.similarity, reverse=True)
    logger.debug("ranked %d candidates, keeping top %d", len(results), top_k)
    return results[:top_k]

def explain_similarity(
    subject: PropertyFeatures,
    comparable: PropertyFeaturePayload,
    similarity: float,
    distance_meters: float,
) -> list[str]:
    reasons = []
    if distance_meters <= VERY_CLOSE_METERS:
        reasons.append("Very close geo-location")
    if comparable.property_type == subject.property_type:
        reasons.append("Same property type")
    if abs(comparable.size_sqm - subject.size_sqm) <= SIMILAR_SIZE_SQM:
        reasons.append("Similar built area")
    if abs(comparable.floor - subject.floor) <= SIMILAR_FLOOR_DELTA:
        reasons.append("Similar floor level")
    if abs(comparable.condition_score - subject.condition_score) <= SIMILAR_CONDITION_DELTA:
        reasons.append("Condition profile is close")
    reasons.append(f"Similarity score={similarity * 100:.1f}%")
    return reasons
