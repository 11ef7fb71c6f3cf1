"""
Market Value Estimator

Combines comparable sales, manual entry and a condition/motivation-driven
fallback into one market value figure with a source tag.

Precedence (strict):
1. COMPARABLES - mean sale price of the ranked comps
2. MANUAL - user-provided market value
3. ESTIMATED - asking price x multiplier
"""

from dataclasses import dataclass
from typing import List, Optional

from utils.formatting import round_half_up

from .comp_engine.models import ComparableSale
from .models import Condition, MarketValueSource, MissingAskingPriceError, SubjectProperty


# =============================================================================
# Fallback Multipliers
# =============================================================================

BASE_MULTIPLIER = 1.20

# (minimum motivation score, multiplier), checked in order
MOTIVATION_MULTIPLIERS = [
    (8, 1.30),
    (6, 1.20),
    (4, 1.15),
]
LOW_MOTIVATION_MULTIPLIER = 1.10

EXCELLENT_CONDITION_FACTOR = 1.05
POOR_CONDITION_FACTOR = 0.95


@dataclass(frozen=True)
class MarketValueEstimate:
    """Market value with its provenance."""
    value: float
    source: MarketValueSource
    multiplier: Optional[float] = None  # Only set for ESTIMATED


def calculate_bmv_percent(market_value: float, asking_price: float) -> float:
    """
    Calculate Below Market Value percentage.

    BMV% = (Market Value - Asking Price) / Market Value * 100

    Returns:
        BMV percentage (negative if overpriced, 0 if no market value)
    """
    if market_value <= 0:
        return 0.0
    return ((market_value - asking_price) / market_value) * 100


def average_sale_price(comps: List[ComparableSale]) -> Optional[int]:
    """Mean sale price rounded to the nearest pound, None if no comps."""
    if not comps:
        return None
    return round_half_up(sum(c.sale_price for c in comps) / len(comps))


def fallback_multiplier(
    motivation_score: Optional[float],
    condition: Optional[Condition],
) -> float:
    """
    Multiplier applied to the asking price when no evidence is available.

    A motivation score of 0 is treated the same as no score.
    """
    multiplier = BASE_MULTIPLIER

    if motivation_score:
        multiplier = LOW_MOTIVATION_MULTIPLIER
        for threshold, value in MOTIVATION_MULTIPLIERS:
            if motivation_score >= threshold:
                multiplier = value
                break

    if condition == Condition.EXCELLENT:
        multiplier *= EXCELLENT_CONDITION_FACTOR
    elif condition in (Condition.POOR, Condition.NEEDS_MODERNISATION):
        multiplier *= POOR_CONDITION_FACTOR

    return multiplier


class MarketValueEstimator:
    """Produces a market value for every subject with a known asking price."""

    def estimate(
        self,
        subject: SubjectProperty,
        comps: List[ComparableSale],
    ) -> MarketValueEstimate:
        """
        Estimate market value for a subject property.

        Args:
            subject: The property being valued
            comps: Filtered and ranked comparable sales

        Returns:
            MarketValueEstimate with value and source

        Raises:
            MissingAskingPriceError: If the subject has no asking price
        """
        if not subject.has_asking_price:
            raise MissingAskingPriceError()

        comparable_average = average_sale_price(comps)
        if comparable_average:
            return MarketValueEstimate(
                value=comparable_average,
                source=MarketValueSource.COMPARABLE_SALES,
            )

        if subject.manual_market_value:
            return MarketValueEstimate(
                value=subject.manual_market_value,
                source=MarketValueSource.MANUAL_ENTRY,
            )

        multiplier = fallback_multiplier(subject.motivation_score, subject.condition)
        return MarketValueEstimate(
            value=subject.asking_price * multiplier,
            source=MarketValueSource.ESTIMATED,
            multiplier=multiplier,
        )
