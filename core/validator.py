"""
Deal validation.

Single-predicate classification into VALIDATED / REJECTED, re-evaluated
on every calculation. Validated deals get a rating tier; rejected deals
get every failing criterion listed independently.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .models import DealRating, FailureReason


# =============================================================================
# Thresholds
# =============================================================================

MIN_BMV_PERCENT = 15.0
MIN_PROFIT = 10000.0

EXCELLENT_BMV_PERCENT = 25.0
STRONG_BMV_PERCENT = 20.0


@dataclass(frozen=True)
class ValidationOutcome:
    """Structured verdict for a deal."""
    passed: bool
    rating: Optional[DealRating] = None
    reasons: List[FailureReason] = field(default_factory=list)


def rate_deal(bmv_score: float) -> DealRating:
    """Qualitative rating for a validated deal."""
    if bmv_score >= EXCELLENT_BMV_PERCENT:
        return DealRating.EXCELLENT
    if bmv_score >= STRONG_BMV_PERCENT:
        return DealRating.STRONG
    return DealRating.ACCEPTABLE


class DealValidator:
    """Applies the pass/fail thresholds."""

    def __init__(
        self,
        min_bmv_percent: float = MIN_BMV_PERCENT,
        min_profit: float = MIN_PROFIT,
    ):
        self.min_bmv_percent = min_bmv_percent
        self.min_profit = min_profit

    def validate(self, bmv_score: float, profit_potential: float) -> ValidationOutcome:
        """
        Classify a deal.

        Args:
            bmv_score: BMV percentage
            profit_potential: Market value less offer and refurb

        Returns:
            ValidationOutcome with rating (passed) or reasons (failed)
        """
        reasons = []
        if bmv_score < self.min_bmv_percent:
            reasons.append(FailureReason.BMV_TOO_LOW)
        if profit_potential < self.min_profit:
            reasons.append(FailureReason.INSUFFICIENT_PROFIT)

        if reasons:
            return ValidationOutcome(passed=False, reasons=reasons)

        return ValidationOutcome(passed=True, rating=rate_deal(bmv_score))
