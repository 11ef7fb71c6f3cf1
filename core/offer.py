"""
Offer Price Calculator

Recommended offer as a percentage of market value, adjusted by seller
motivation, property condition and urgency, then clamped to policy.
"""

from dataclasses import dataclass
from typing import Optional

from .models import Condition, UrgencyLevel


# =============================================================================
# Offer Policy
# =============================================================================

BASE_OFFER_PERCENT = 78.0
MIN_OFFER_PERCENT = 65.0
MAX_OFFER_PERCENT = 85.0

CONDITION_ADJUSTMENTS = {
    Condition.POOR: -5.0,
    Condition.NEEDS_MODERNISATION: -5.0,
    Condition.NEEDS_WORK: -3.0,
    Condition.EXCELLENT: 3.0,
}

URGENCY_ADJUSTMENTS = {
    UrgencyLevel.URGENT: -3.0,
    UrgencyLevel.FLEXIBLE: 2.0,
}


@dataclass(frozen=True)
class OfferCalculation:
    """Recommended offer and resulting profit."""
    offer_percentage: float
    unclamped_percentage: float
    offer_amount: float
    refurb_cost: float
    profit_potential: float

    @property
    def was_clamped(self) -> bool:
        return self.offer_percentage != self.unclamped_percentage


def motivation_offer_percent(motivation_score: Optional[float]) -> float:
    """
    Starting offer percentage from seller motivation.

    Only >=8, >=6 and <=4 move the base; anything in (4, 6) keeps it.
    A score of 0 is treated the same as no score.
    """
    if not motivation_score:
        return BASE_OFFER_PERCENT
    if motivation_score >= 8:
        return 72.0
    if motivation_score >= 6:
        return 75.0
    if motivation_score <= 4:
        return 82.0
    return BASE_OFFER_PERCENT


class OfferCalculator:
    """Computes the recommended acquisition offer."""

    def calculate(
        self,
        market_value: float,
        motivation_score: Optional[float] = None,
        condition: Optional[Condition] = None,
        urgency_level: Optional[UrgencyLevel] = None,
        refurb_cost: Optional[float] = None,
    ) -> OfferCalculation:
        """
        Calculate offer percentage, amount and profit potential.

        Args:
            market_value: Estimated market value
            motivation_score: Seller motivation (0-10)
            condition: Property condition
            urgency_level: Seller urgency
            refurb_cost: Estimated refurbishment cost (default 0)

        Returns:
            OfferCalculation with the clamped percentage
        """
        percentage = motivation_offer_percent(motivation_score)
        percentage += CONDITION_ADJUSTMENTS.get(condition, 0.0)
        percentage += URGENCY_ADJUSTMENTS.get(urgency_level, 0.0)

        clamped = max(MIN_OFFER_PERCENT, min(MAX_OFFER_PERCENT, percentage))

        refurb_cost = refurb_cost or 0
        offer_amount = market_value * (clamped / 100)

        return OfferCalculation(
            offer_percentage=clamped,
            unclamped_percentage=percentage,
            offer_amount=offer_amount,
            refurb_cost=refurb_cost,
            profit_potential=market_value - offer_amount - refurb_cost,
        )
