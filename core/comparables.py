"""
Comparables Fetcher - fetch, score and store comparables for a subject.

Runs ahead of a valuation so that later calculations can use the stored
comps at no cost. Stored comps younger than the refresh window are
returned as-is unless a refresh is forced.

Pipeline:
1. Reuse stored comps if fresh
2. Fetch sold prices (metered), filter and rank
3. Score each comp's confidence
4. Enrich each comp with the area rent and its implied yield
5. Store, summarise and emit one pipeline event
"""

import logging
import time
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, List, Optional, Tuple

from .comp_engine.confidence import assess_comparables, score_comparable
from .comp_engine.filters import ComparableFilter
from .comp_engine.models import ComparableSale, ComparablesConfig, Confidence
from .events import PipelineEvent, build_comparables_event
from .models import RentalEstimate, SubjectProperty
from .sources import (
    ComparableSalesProvider,
    ComparablesStore,
    DataSourceError,
    RentalDataProvider,
)
from .valuation import average_sale_price


# =============================================================================
# Configuration Constants
# =============================================================================

REFRESH_AFTER_HOURS = 24

# Comps kept per subject; valuations rank and truncate further
STORED_COMPARABLES_LIMIT = 50


def enrich_with_rent(comp: ComparableSale, estimate: Optional[RentalEstimate]) -> ComparableSale:
    """
    Attach the area rent and the gross yield it implies at the comp's sale price.

    The yield range comes from the rent confidence range when one is known.
    """
    if estimate is None or not estimate.monthly_rent:
        return comp

    def _yield(monthly_rent: float) -> float:
        return round(monthly_rent * 12 / comp.sale_price * 100, 2)

    low = high = None
    if estimate.confidence_range:
        low, high = (_yield(r) for r in estimate.confidence_range)

    return replace(
        comp,
        monthly_rent=estimate.monthly_rent,
        rental_yield=_yield(estimate.monthly_rent),
        rental_yield_min=low,
        rental_yield_max=high,
    )


@dataclass(frozen=True)
class ComparablesSummary:
    """Stored comps for a subject plus headline statistics."""
    subject_id: str
    comparables: Tuple[ComparableSale, ...]
    search_radius_miles: float
    credits_used: int = 0
    cached: bool = False

    @property
    def count(self) -> int:
        return len(self.comparables)

    @property
    def average_price(self) -> Optional[int]:
        return average_sale_price(list(self.comparables))

    @property
    def price_range(self) -> Optional[Tuple[float, float]]:
        if not self.comparables:
            return None
        prices = [c.sale_price for c in self.comparables]
        return (min(prices), max(prices))

    @property
    def average_rental_yield(self) -> Optional[float]:
        yields = [c.rental_yield for c in self.comparables if c.rental_yield is not None]
        if not yields:
            return None
        return round(sum(yields) / len(yields), 2)

    @property
    def rental_yield_range(self) -> Optional[Tuple[float, float]]:
        yields = [c.rental_yield for c in self.comparables if c.rental_yield is not None]
        if not yields:
            return None
        return (min(yields), max(yields))

    @property
    def confidence(self) -> Confidence:
        return assess_comparables(list(self.comparables))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        def _range(values):
            return {"min": values[0], "max": values[1]} if values else None

        return {
            "subject_id": self.subject_id,
            "count": self.count,
            "cached": self.cached,
            "average_price": self.average_price,
            "price_range": _range(self.price_range),
            "average_rental_yield": self.average_rental_yield,
            "rental_yield_range": _range(self.rental_yield_range),
            "confidence": self.confidence.value,
            "search_radius_miles": self.search_radius_miles,
            "credits_used": self.credits_used,
            "comparables": [
                {
                    "address": c.address,
                    "postcode": c.postcode,
                    "sale_price": c.sale_price,
                    "sale_date": c.sale_date.isoformat(),
                    "bedrooms": c.bedrooms,
                    "property_type": c.property_type,
                    "distance_miles": c.distance_miles,
                    "square_feet": c.square_feet,
                    "price_per_sqft": c.price_per_sqft,
                    "confidence": c.confidence,
                    "monthly_rent": c.monthly_rent,
                    "rental_yield": c.rental_yield,
                    "rental_yield_min": c.rental_yield_min,
                    "rental_yield_max": c.rental_yield_max,
                }
                for c in self.comparables
            ],
        }


class ComparablesFetcher:
    """
    Fetches and stores scored comparables for a subject.

    Example:
        fetcher = ComparablesFetcher(client, store, rental_provider=client)
        summary = fetcher.fetch(subject)
        print(summary.average_price, summary.confidence)
    """

    def __init__(
        self,
        comparables_provider: Optional[ComparableSalesProvider],
        store: ComparablesStore,
        rental_provider: Optional[RentalDataProvider] = None,
        config: Optional[ComparablesConfig] = None,
        reference_date: date = None,
        event_sink: Optional[Callable[[PipelineEvent], None]] = None,
        refresh_after_hours: float = REFRESH_AFTER_HOURS,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        self.comparables_provider = comparables_provider
        self.store = store
        self.rental_provider = rental_provider
        self.config = config or ComparablesConfig()
        self.reference_date = reference_date
        self.event_sink = event_sink
        self.refresh_after_seconds = refresh_after_hours * 3600
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def fetch(self, subject: SubjectProperty, force_refresh: bool = False) -> ComparablesSummary:
        """
        Fetch, score and store comparables for a subject.

        Args:
            subject: Property whose comps are wanted (needs subject_id and postcode)
            force_refresh: Ignore stored comps even if still fresh

        Returns:
            ComparablesSummary (cached=True when stored comps were reused)

        Raises:
            ValueError: If the subject has no subject_id or postcode
            DataSourceError: If the sold-prices lookup fails
        """
        if not subject.subject_id:
            raise ValueError("subject_id is required to store comparables")
        if not subject.postcode:
            raise ValueError("Property postcode is required to fetch comparables")

        if not force_refresh:
            stored = self._fresh_stored(subject.subject_id)
            if stored:
                self.logger.info(
                    "Using %d stored comparables for %s", len(stored), subject.subject_id,
                )
                return ComparablesSummary(
                    subject_id=subject.subject_id,
                    comparables=tuple(stored),
                    search_radius_miles=self.config.search_radius_miles,
                    cached=True,
                )

        if self.comparables_provider is None:
            raise DataSourceError("No comparable sales provider configured")

        reference_date = self.reference_date or date.today()
        fetched = self.comparables_provider.fetch_comparable_sales(
            subject.postcode,
            subject.bedrooms,
            self.config.search_radius_miles,
            STORED_COMPARABLES_LIMIT,
        )
        comps = ComparableFilter(reference_date).filter_and_rank(
            fetched.comparables,
            target_bedrooms=subject.bedrooms,
            target_property_type=subject.property_type,
            max_age_months=self.config.max_age_months,
            max_results=STORED_COMPARABLES_LIMIT,
            bedroom_tolerance=self.config.bedroom_tolerance,
        )

        rent, rent_credits = self._area_rent(subject) if comps else (None, 0)
        scored = [
            enrich_with_rent(
                replace(
                    comp,
                    confidence=score_comparable(
                        comp,
                        target_bedrooms=subject.bedrooms,
                        target_property_type=subject.property_type,
                        reference_date=reference_date,
                    ),
                ),
                rent,
            )
            for comp in comps
        ]

        summary = ComparablesSummary(
            subject_id=subject.subject_id,
            comparables=tuple(scored),
            search_radius_miles=self.config.search_radius_miles,
            credits_used=fetched.credits_used + rent_credits,
        )

        if not scored:
            self.logger.info(
                "No comparables for %s within %s miles; stored comps left unchanged",
                subject.subject_id, self.config.search_radius_miles,
            )
            return summary

        self.store.save_comparables(subject.subject_id, scored)
        self.logger.info(
            "Stored %d comparables for %s: average %s, confidence %s, %d credits",
            summary.count, subject.subject_id, summary.average_price,
            summary.confidence.value, summary.credits_used,
        )

        if self.event_sink is not None:
            self.event_sink(build_comparables_event(summary))

        return summary

    def _fresh_stored(self, subject_id: str) -> List[ComparableSale]:
        fetched_at = self.store.fetched_at(subject_id)
        if fetched_at is None or self._clock() - fetched_at >= self.refresh_after_seconds:
            return []
        return self.store.load_cached_comparables(subject_id)

    def _area_rent(self, subject: SubjectProperty) -> Tuple[Optional[RentalEstimate], int]:
        if self.rental_provider is None:
            return None, 0
        try:
            fetched = self.rental_provider.fetch_rental_estimate(
                subject.postcode, subject.bedrooms, subject.property_type,
            )
        except DataSourceError as e:
            self.logger.warning(
                "rental estimate lookup for %s failed, comparables stored without rent: %s",
                subject.postcode, e,
            )
            return None, 0
        return fetched.estimate, fetched.credits_used
