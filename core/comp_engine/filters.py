"""
Comparable Filter & Ranker

Narrows a raw comparable set to the most relevant subset:
- Sale date (within max_age_months, 30-day months)
- Bedroom count (within tolerance, when both sides are known)
- Property type (loose, case-insensitive match)

Then orders by distance (0.1 mile tie band) and sale date, and truncates.
"""

from datetime import date, timedelta
from functools import cmp_to_key
from typing import List, Optional

from .models import ComparableSale


# =============================================================================
# Configuration Constants
# =============================================================================

DEFAULT_MAX_AGE_MONTHS = 12
DEFAULT_MAX_RESULTS = 5
DEFAULT_BEDROOM_TOLERANCE = 1

# Days per month used for the age cutoff (calendar approximation)
DAYS_PER_MONTH = 30

# Distances closer than this are treated as equal when ranking
DISTANCE_TIE_MILES = 0.1


def property_types_match(target_type: str, comp_type: str) -> bool:
    """
    Loose property type match.

    Matches when either type contains the other, or both are houses,
    or both are flats. Case-insensitive.
    """
    target = (target_type or "").lower()
    comp = (comp_type or "").lower()

    if comp in target or target in comp:
        return True
    if "house" in target and "house" in comp:
        return True
    if "flat" in target and "flat" in comp:
        return True
    return False


def _compare_for_ranking(a: ComparableSale, b: ComparableSale) -> int:
    """Distance ascending (unknown last), then sale date descending."""
    if a.distance_miles is not None and b.distance_miles is not None:
        diff = a.distance_miles - b.distance_miles
        if abs(diff) > DISTANCE_TIE_MILES:
            return -1 if diff < 0 else 1
    elif a.distance_miles is not None:
        return -1
    elif b.distance_miles is not None:
        return 1

    if a.sale_date == b.sale_date:
        return 0
    return -1 if a.sale_date > b.sale_date else 1


class ComparableFilter:
    """
    Applies relevance filters and ranking to comparable sales.

    A sale must pass ALL filters to be kept.
    """

    def __init__(self, reference_date: date = None):
        """
        Initialize filter with reference date.

        Args:
            reference_date: Date to calculate sale age from (default: today)
        """
        self._reference_date = reference_date or date.today()

    def filter_and_rank(
        self,
        candidates: List[ComparableSale],
        target_bedrooms: Optional[int] = None,
        target_property_type: Optional[str] = None,
        max_age_months: int = DEFAULT_MAX_AGE_MONTHS,
        max_results: int = DEFAULT_MAX_RESULTS,
        bedroom_tolerance: int = DEFAULT_BEDROOM_TOLERANCE,
    ) -> List[ComparableSale]:
        """
        Filter candidates to relevant comps and return the best ranked.

        Args:
            candidates: Raw comparable sales
            target_bedrooms: Subject bedroom count (optional)
            target_property_type: Subject property type (optional)
            max_age_months: Maximum sale age in months
            max_results: Maximum comps to return
            bedroom_tolerance: Allowed bedroom difference

        Returns:
            Ordered list of at most max_results comps
        """
        filtered = self.filter_by_date(candidates, max_age_months)
        filtered = self.filter_by_bedrooms(filtered, target_bedrooms, bedroom_tolerance)
        filtered = self.filter_by_property_type(filtered, target_property_type)
        return self.rank(filtered, max_results)

    def rank(
        self,
        comps: List[ComparableSale],
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> List[ComparableSale]:
        """Order comps by distance then recency, and truncate."""
        ordered = sorted(comps, key=cmp_to_key(_compare_for_ranking))
        return ordered[:max_results]

    def filter_by_date(
        self,
        comps: List[ComparableSale],
        max_months: int,
    ) -> List[ComparableSale]:
        """Filter comps to within date range."""
        return [
            c for c in comps
            if self._is_within_date_range(c.sale_date, max_months)
        ]

    def filter_by_bedrooms(
        self,
        comps: List[ComparableSale],
        target_bedrooms: Optional[int],
        tolerance: int = DEFAULT_BEDROOM_TOLERANCE,
    ) -> List[ComparableSale]:
        """
        Filter comps to within bedroom tolerance.

        Comps with unknown (0) bedrooms are never dropped here.
        """
        if not target_bedrooms:
            return list(comps)
        return [
            c for c in comps
            if c.bedrooms <= 0 or abs(c.bedrooms - target_bedrooms) <= tolerance
        ]

    def filter_by_property_type(
        self,
        comps: List[ComparableSale],
        target_property_type: Optional[str],
    ) -> List[ComparableSale]:
        """Filter comps to loosely matching property types."""
        if not target_property_type:
            return list(comps)
        return [
            c for c in comps
            if property_types_match(target_property_type, c.property_type)
        ]

    def _is_within_date_range(self, sale_date: date, max_months: int) -> bool:
        """Check if sale date is within allowed range."""
        cutoff = self._reference_date - timedelta(days=max_months * DAYS_PER_MONTH)
        return sale_date >= cutoff
