"""
Valuation Engine - orchestrates a single BMV calculation.

Pipeline:
1. Resolve comparables (cache, then metered lookup) and rent (manual,
   then metered lookup). The two lookups run concurrently.
2. Filter, rank and score comparables
3. Estimate market value (comparables > manual > estimated)
4. Rental yield, offer, validation
5. Build the result, render the report, emit one pipeline event

Only a missing asking price aborts. Every lookup failure degrades to the
next source down.
"""

import concurrent.futures
import logging
import time
from dataclasses import replace
from datetime import date
from typing import Callable, List, Optional, Tuple

from utils.formatting import round_half_up

from .comp_engine.confidence import assess_comparables, score_comparable
from .comp_engine.filters import ComparableFilter
from .comp_engine.models import ComparableSale, ComparablesConfig
from .events import PipelineEvent, build_pipeline_event
from .models import (
    MissingAskingPriceError,
    RentalDataSource,
    RentalEstimate,
    SubjectProperty,
    ValuationResult,
)
from .offer import OfferCalculator
from .rental import RentalYieldCalculator
from .report import render_validation_report
from .sources import (
    CachedComparablesLoader,
    ComparableFetch,
    ComparableSalesProvider,
    DataSourceError,
    RentalDataProvider,
)
from .validator import DealValidator
from .valuation import MarketValueEstimator, calculate_bmv_percent


# =============================================================================
# Configuration Constants
# =============================================================================

DEFAULT_LOOKUP_TIMEOUT_SECONDS = 30.0

# Raw results requested from the sold-prices lookup before filtering
RAW_COMPARABLES_LIMIT = 50


class ValuationEngine:
    """
    Stateless BMV calculator with injected data sources.

    Example:
        engine = ValuationEngine(comparables_provider=client, rental_provider=client)
        result = engine.calculate(subject)
        print(result.validation_notes)
    """

    def __init__(
        self,
        comparables_provider: Optional[ComparableSalesProvider] = None,
        rental_provider: Optional[RentalDataProvider] = None,
        comparables_loader: Optional[CachedComparablesLoader] = None,
        config: Optional[ComparablesConfig] = None,
        reference_date: date = None,
        logger: Optional[logging.Logger] = None,
        event_sink: Optional[Callable[[PipelineEvent], None]] = None,
        lookup_timeout_seconds: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS,
    ):
        """
        Initialize the engine.

        Args:
            comparables_provider: Metered sold-prices lookup (optional)
            rental_provider: Metered rent lookup (optional)
            comparables_loader: Zero-cost cached comparables (optional)
            config: Comparable search configuration
            reference_date: Date to age sales against (default: today)
            logger: Logger for degradation warnings (default: module logger)
            event_sink: Callable receiving one PipelineEvent per calculation
            lookup_timeout_seconds: Maximum total wait for the external lookups
        """
        self.comparables_provider = comparables_provider
        self.rental_provider = rental_provider
        self.comparables_loader = comparables_loader
        self.config = config or ComparablesConfig()
        self.reference_date = reference_date
        self.logger = logger or logging.getLogger(__name__)
        self.event_sink = event_sink
        self.lookup_timeout_seconds = lookup_timeout_seconds

        self.estimator = MarketValueEstimator()
        self.rental_calculator = RentalYieldCalculator()
        self.offer_calculator = OfferCalculator()
        self.validator = DealValidator()

    def calculate(
        self,
        subject: SubjectProperty,
        cached_comparables: Optional[List[ComparableSale]] = None,
    ) -> ValuationResult:
        """
        Run the full valuation for a subject property.

        Args:
            subject: The property being valued (never mutated)
            cached_comparables: Previously stored comps; skips the metered lookup

        Returns:
            ValuationResult

        Raises:
            MissingAskingPriceError: If the subject has no asking price
        """
        if not subject.has_asking_price:
            raise MissingAskingPriceError()

        reference_date = self.reference_date or date.today()

        if cached_comparables is None:
            cached_comparables = self._load_cached(subject)

        manual_rent = self._manual_rent(subject)

        comps, comp_credits, rent, rent_credits = self._run_lookups(
            subject,
            fetch_comparables=not cached_comparables,
            fetch_rent=manual_rent is None,
            reference_date=reference_date,
        )
        if cached_comparables:
            comps = ComparableFilter(reference_date).rank(
                cached_comparables, self.config.max_results
            )
        if manual_rent is not None:
            rent = manual_rent

        estimate = self.estimator.estimate(subject, comps)
        bmv_score = calculate_bmv_percent(estimate.value, subject.asking_price)

        monthly_rent = rent.monthly_rent if rent else 0
        rental = self.rental_calculator.calculate(
            asking_price=subject.asking_price,
            monthly_rent=monthly_rent,
            annual_rent=subject.manual_annual_rent if manual_rent is not None else None,
            square_feet=subject.square_feet,
            local_average_rent=subject.local_average_rent,
        )

        offer = self.offer_calculator.calculate(
            market_value=estimate.value,
            motivation_score=subject.motivation_score,
            condition=subject.condition,
            urgency_level=subject.urgency_level,
            refurb_cost=subject.estimated_refurb_cost,
        )
        if offer.was_clamped:
            self.logger.debug(
                "Offer percentage %.1f%% clamped to %.1f%%",
                offer.unclamped_percentage, offer.offer_percentage,
            )

        outcome = self.validator.validate(bmv_score, offer.profit_potential)

        result = ValuationResult(
            asking_price=subject.asking_price,
            market_value=estimate.value,
            market_value_source=estimate.source,
            bmv_score=bmv_score,
            offer_amount=offer.offer_amount,
            offer_percentage=offer.offer_percentage,
            refurb_cost=offer.refurb_cost,
            profit_potential=offer.profit_potential,
            validation_passed=outcome.passed,
            validation_notes="",
            rating=outcome.rating,
            failure_reasons=tuple(outcome.reasons),
            comparables=tuple(comps),
            comparables_confidence=assess_comparables(comps),
            monthly_rent=rental.monthly_rent,
            weekly_rent=rent.weekly_rent if rent and rental.has_rent else 0,
            annual_rent=rental.annual_rent,
            gross_yield=rental.gross_yield,
            net_yield=rental.net_yield,
            rent_per_area=rental.rent_per_area,
            rent_vs_local_average=rental.rent_vs_local_average,
            estimated_monthly_cash_flow=rental.estimated_monthly_cash_flow,
            has_good_yield=rental.has_good_yield,
            rental_data_source=rent.source if rent and rental.has_rent else RentalDataSource.NONE,
            rent_confidence_range=rent.confidence_range if rent and rental.has_rent else None,
            credits_used=comp_credits + rent_credits,
        )

        result = replace(
            result,
            validation_notes=render_validation_report(
                result,
                search_radius_miles=self.config.search_radius_miles,
                max_age_months=self.config.max_age_months,
                postcode_known=bool(subject.postcode),
            ),
        )

        self.logger.info(
            "Valuation for %s: %s %.1f%% BMV, market value %s (%s), %d credits",
            subject.subject_id or subject.postcode or "subject",
            "validated" if result.validation_passed else "rejected",
            result.bmv_score,
            result.market_value,
            result.market_value_source.value,
            result.credits_used,
        )

        if self.event_sink is not None:
            self.event_sink(build_pipeline_event(result, subject_id=subject.subject_id))

        return result

    # =========================================================================
    # Source resolution
    # =========================================================================

    def _load_cached(self, subject: SubjectProperty) -> List[ComparableSale]:
        if self.comparables_loader is None or not subject.subject_id:
            return []
        return list(self.comparables_loader.load_cached_comparables(subject.subject_id))

    def _manual_rent(self, subject: SubjectProperty) -> Optional[RentalEstimate]:
        """
        Manual rent takes precedence over any lookup.

        A manual annual figure on its own is spread evenly across the year.
        """
        if subject.manual_monthly_rent and subject.manual_monthly_rent > 0:
            return RentalEstimate.from_monthly(subject.manual_monthly_rent)
        if subject.manual_annual_rent and subject.manual_annual_rent > 0:
            return RentalEstimate.from_monthly(round_half_up(subject.manual_annual_rent / 12))
        return None

    def _run_lookups(
        self,
        subject: SubjectProperty,
        fetch_comparables: bool,
        fetch_rent: bool,
        reference_date: date,
    ) -> Tuple[List[ComparableSale], int, Optional[RentalEstimate], int]:
        """
        Run the needed metered lookups concurrently and join them.

        Returns:
            (ranked comps, comp credits, rent estimate, rent credits)
        """
        fetch_comparables = (
            fetch_comparables and bool(subject.postcode) and self.comparables_provider is not None
        )
        fetch_rent = fetch_rent and bool(subject.postcode) and self.rental_provider is not None

        if not fetch_comparables and not fetch_rent:
            return [], 0, None, 0

        comps: List[ComparableSale] = []
        comp_credits = 0
        rent = None
        rent_credits = 0

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=2)
        try:
            comp_future = None
            rent_future = None
            if fetch_comparables:
                comp_future = executor.submit(
                    self.comparables_provider.fetch_comparable_sales,
                    subject.postcode,
                    subject.bedrooms,
                    self.config.search_radius_miles,
                    RAW_COMPARABLES_LIMIT,
                )
            if fetch_rent:
                rent_future = executor.submit(
                    self.rental_provider.fetch_rental_estimate,
                    subject.postcode,
                    subject.bedrooms,
                    subject.property_type,
                )

            deadline = time.monotonic() + self.lookup_timeout_seconds

            if comp_future is not None:
                fetched = self._join(comp_future, "comparable sales", subject.postcode, deadline)
                if fetched is not None:
                    comps = self._filter_and_score(subject, fetched, reference_date)
                    comp_credits = fetched.credits_used

            if rent_future is not None:
                fetched = self._join(rent_future, "rental estimate", subject.postcode, deadline)
                if fetched is not None:
                    rent = fetched.estimate
                    rent_credits = fetched.credits_used
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return comps, comp_credits, rent, rent_credits

    def _join(self, future, lookup_name: str, postcode: str, deadline: float):
        """Wait for a lookup until the shared deadline, returning None when it failed or timed out."""
        try:
            return future.result(timeout=max(0.0, deadline - time.monotonic()))
        except concurrent.futures.TimeoutError:
            self.logger.warning(
                "%s lookup for %s timed out after %ss, using fallback",
                lookup_name, postcode, self.lookup_timeout_seconds,
            )
        except DataSourceError as e:
            self.logger.warning(
                "%s lookup for %s failed, using fallback: %s",
                lookup_name, postcode, e,
            )
        return None

    def _filter_and_score(
        self,
        subject: SubjectProperty,
        fetched: ComparableFetch,
        reference_date: date,
    ) -> List[ComparableSale]:
        """Filter and rank fresh comps, then attach a confidence score to each."""
        ranked = ComparableFilter(reference_date).filter_and_rank(
            fetched.comparables,
            target_bedrooms=subject.bedrooms,
            target_property_type=subject.property_type,
            max_age_months=self.config.max_age_months,
            max_results=self.config.max_results,
            bedroom_tolerance=self.config.bedroom_tolerance,
        )
        return [
            comp if comp.confidence is not None else replace(
                comp,
                confidence=score_comparable(
                    comp,
                    target_bedrooms=subject.bedrooms,
                    target_property_type=subject.property_type,
                    reference_date=reference_date,
                ),
            )
            for comp in ranked
        ]
