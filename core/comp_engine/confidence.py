"""
Confidence scoring for comparable sales.

Two levels:
- Per-comp score (0-1) from recency, distance, similarity and completeness
- Set-level tier (HIGH / MEDIUM / LOW) from count and mean per-comp score
"""

from datetime import date
from typing import Iterable, Optional

from .filters import DAYS_PER_MONTH, property_types_match
from .models import ComparableSale, Confidence


# =============================================================================
# Tier Thresholds
# =============================================================================

HIGH_MIN_COUNT = 5
HIGH_MIN_MEAN_CONFIDENCE = 0.8
MEDIUM_MIN_COUNT = 3
MEDIUM_MIN_MEAN_CONFIDENCE = 0.6


def confidence_tier(count: int, mean_confidence: float = 1.0) -> Confidence:
    """
    Assign a confidence tier to a comparable set. First match wins.

    Args:
        count: Number of comparables
        mean_confidence: Mean per-comp confidence (1.0 when unscored)

    Returns:
        Confidence tier
    """
    if count >= HIGH_MIN_COUNT and mean_confidence >= HIGH_MIN_MEAN_CONFIDENCE:
        return Confidence.HIGH
    if count >= MEDIUM_MIN_COUNT and mean_confidence >= MEDIUM_MIN_MEAN_CONFIDENCE:
        return Confidence.MEDIUM
    return Confidence.LOW


def mean_confidence(comps: Iterable[ComparableSale]) -> float:
    """Mean per-comp confidence, missing scores counting as 1."""
    scores = [c.effective_confidence for c in comps]
    if not scores:
        return 1.0
    return sum(scores) / len(scores)


def assess_comparables(comps: list[ComparableSale]) -> Confidence:
    """Confidence tier for a list of comparables."""
    return confidence_tier(len(comps), mean_confidence(comps))


def score_comparable(
    comp: ComparableSale,
    target_bedrooms: Optional[int] = None,
    target_property_type: Optional[str] = None,
    reference_date: date = None,
) -> float:
    """
    Score a single comparable sale between 0 and 1.

    Factors (multiplicative):
    - Recency: <=6m 1.0, <=12m 0.9, <=18m 0.8, older 0.7
    - Distance: <=0.5mi 1.0, <=1mi 0.95, <=2mi 0.9, <=3mi 0.85, further 0.7
    - Bedrooms: exact 1.0, +/-1 0.9, more 0.8
    - Type: contained 1.0, same house/flat family 0.95, different 0.85
    - Completeness: 0.9 plus 0.05 each for distance and floor area
    """
    reference_date = reference_date or date.today()
    score = 1.0

    months_ago = (reference_date - comp.sale_date).days / DAYS_PER_MONTH
    if months_ago <= 6:
        score *= 1.0
    elif months_ago <= 12:
        score *= 0.9
    elif months_ago <= 18:
        score *= 0.8
    else:
        score *= 0.7

    if comp.distance_miles is not None:
        if comp.distance_miles <= 0.5:
            score *= 1.0
        elif comp.distance_miles <= 1:
            score *= 0.95
        elif comp.distance_miles <= 2:
            score *= 0.9
        elif comp.distance_miles <= 3:
            score *= 0.85
        else:
            score *= 0.7

    if target_bedrooms and comp.bedrooms:
        bedroom_diff = abs(comp.bedrooms - target_bedrooms)
        if bedroom_diff == 1:
            score *= 0.9
        elif bedroom_diff > 1:
            score *= 0.8

    if target_property_type and comp.property_type:
        target = target_property_type.lower()
        comp_type = comp.property_type.lower()
        if comp_type in target or target in comp_type:
            score *= 1.0
        elif property_types_match(target, comp_type):
            score *= 0.95
        else:
            score *= 0.85

    has_distance = comp.distance_miles is not None
    has_square_feet = comp.square_feet is not None and comp.square_feet > 0
    completeness = (0.5 if has_distance else 0) + (0.5 if has_square_feet else 0)
    score *= 0.9 + completeness * 0.1

    return max(0.0, min(1.0, score))
