"""
Comp Engine

Comparable sales selection: relevance filtering, ranking and confidence
scoring for the evidence behind a market value.
"""

from .models import (
    ComparableSale,
    ComparablesConfig,
    Confidence,
    InvalidConfigurationError,
)
from .filters import ComparableFilter, property_types_match
from .confidence import (
    assess_comparables,
    confidence_tier,
    mean_confidence,
    score_comparable,
)

__all__ = [
    # Models
    "ComparableSale",
    "ComparablesConfig",
    "Confidence",
    "InvalidConfigurationError",
    # Selection
    "ComparableFilter",
    "property_types_match",
    # Confidence
    "assess_comparables",
    "confidence_tier",
    "mean_confidence",
    "score_comparable",
]
