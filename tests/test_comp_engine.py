"""
Tests for the Comp Engine

Verifies:
- Age, bedroom and property type filters
- Distance-then-recency ranking with the 0.1 mile tie band
- Truncation to max_results
- Confidence tiers and per-comp scoring
- Configuration bounds
"""

import pytest
from datetime import date, timedelta
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.comp_engine import (
    ComparableSale,
    ComparablesConfig,
    Confidence,
    InvalidConfigurationError,
    ComparableFilter,
    property_types_match,
    assess_comparables,
    confidence_tier,
    mean_confidence,
    score_comparable,
)
from core.comp_engine.filters import DAYS_PER_MONTH


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def reference_date():
    """Fixed reference date for deterministic tests."""
    return date(2024, 6, 1)


@pytest.fixture
def create_comp(reference_date):
    """Factory fixture for creating comparable sales."""
    def _create(
        price: float = 200000,
        days_ago: int = 30,
        bedrooms: int = 3,
        property_type: str = "Semi-detached house",
        distance_miles: float = 0.5,
        confidence: float = None,
        square_feet: int = None,
        address: str = None,
    ) -> ComparableSale:
        return ComparableSale(
            address=address or f"{price} Test Street",
            sale_price=price,
            sale_date=reference_date - timedelta(days=days_ago),
            postcode="N7 8TY",
            bedrooms=bedrooms,
            property_type=property_type,
            distance_miles=distance_miles,
            confidence=confidence,
            square_feet=square_feet,
        )
    return _create


@pytest.fixture
def comp_filter(reference_date):
    """Filter with fixed reference date."""
    return ComparableFilter(reference_date=reference_date)


# =============================================================================
# Model Validation
# =============================================================================

class TestComparableSaleValidation:
    """Invalid comparable records are rejected at construction."""

    def test_non_positive_price_rejected(self, reference_date):
        with pytest.raises(ValueError):
            ComparableSale(address="1 High St", sale_price=0, sale_date=reference_date)

    def test_negative_bedrooms_rejected(self, reference_date):
        with pytest.raises(ValueError):
            ComparableSale(
                address="1 High St", sale_price=100000,
                sale_date=reference_date, bedrooms=-1,
            )

    def test_negative_distance_rejected(self, reference_date):
        with pytest.raises(ValueError):
            ComparableSale(
                address="1 High St", sale_price=100000,
                sale_date=reference_date, distance_miles=-0.1,
            )

    def test_confidence_out_of_range_rejected(self, reference_date):
        with pytest.raises(ValueError):
            ComparableSale(
                address="1 High St", sale_price=100000,
                sale_date=reference_date, confidence=1.5,
            )

    @pytest.mark.parametrize("price", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_price_rejected(self, reference_date, price):
        with pytest.raises(ValueError, match="finite"):
            ComparableSale(address="1 High St", sale_price=price, sale_date=reference_date)

    @pytest.mark.parametrize("field_name", [
        "distance_miles", "confidence", "monthly_rent", "rental_yield",
    ])
    def test_non_finite_optional_fields_rejected(self, reference_date, field_name):
        with pytest.raises(ValueError):
            ComparableSale(
                address="1 High St", sale_price=100000,
                sale_date=reference_date, **{field_name: float("nan")},
            )

    def test_missing_confidence_counts_as_one(self, create_comp):
        assert create_comp().effective_confidence == 1.0

    def test_price_per_sqft(self, create_comp):
        assert create_comp(price=200000, square_feet=800).price_per_sqft == 250
        assert create_comp().price_per_sqft is None


# =============================================================================
# Filters
# =============================================================================

class TestDateFilter:
    """Sales older than max_age_months x 30 days are dropped."""

    def test_sale_on_cutoff_kept(self, comp_filter, create_comp):
        comp = create_comp(days_ago=12 * DAYS_PER_MONTH)
        assert comp_filter.filter_by_date([comp], 12) == [comp]

    def test_sale_past_cutoff_dropped(self, comp_filter, create_comp):
        comp = create_comp(days_ago=12 * DAYS_PER_MONTH + 1)
        assert comp_filter.filter_by_date([comp], 12) == []

    def test_longer_window_keeps_older_sales(self, comp_filter, create_comp):
        comp = create_comp(days_ago=500)
        assert comp_filter.filter_by_date([comp], 12) == []
        assert comp_filter.filter_by_date([comp], 18) == [comp]


class TestBedroomFilter:
    """Bedroom tolerance applies only when both counts are known."""

    def test_within_tolerance_kept(self, comp_filter, create_comp):
        comps = [create_comp(bedrooms=2), create_comp(bedrooms=3), create_comp(bedrooms=4)]
        assert len(comp_filter.filter_by_bedrooms(comps, 3, tolerance=1)) == 3

    def test_outside_tolerance_dropped(self, comp_filter, create_comp):
        comps = [create_comp(bedrooms=1), create_comp(bedrooms=5)]
        assert comp_filter.filter_by_bedrooms(comps, 3, tolerance=1) == []

    def test_zero_tolerance_exact_only(self, comp_filter, create_comp):
        exact = create_comp(bedrooms=3)
        result = comp_filter.filter_by_bedrooms([exact, create_comp(bedrooms=4)], 3, tolerance=0)
        assert result == [exact]

    def test_unknown_comp_bedrooms_kept(self, comp_filter, create_comp):
        unknown = create_comp(bedrooms=0)
        assert comp_filter.filter_by_bedrooms([unknown], 3) == [unknown]

    def test_unknown_target_keeps_everything(self, comp_filter, create_comp):
        comps = [create_comp(bedrooms=1), create_comp(bedrooms=6)]
        assert comp_filter.filter_by_bedrooms(comps, None) == comps


class TestPropertyTypeMatch:
    """Loose, case-insensitive property type matching."""

    @pytest.mark.parametrize("target,comp", [
        ("Semi-detached house", "semi-detached"),
        ("terraced", "Terraced House"),
        ("Detached house", "Terraced house"),
        ("Flat", "Purpose built flat"),
        ("ground floor flat", "converted flat"),
    ])
    def test_matching_types(self, target, comp):
        assert property_types_match(target, comp)

    @pytest.mark.parametrize("target,comp", [
        ("flat", "detached house"),
        ("bungalow", "maisonette"),
    ])
    def test_non_matching_types(self, target, comp):
        assert not property_types_match(target, comp)

    def test_type_filter_drops_mismatches(self, comp_filter, create_comp):
        house = create_comp(property_type="Terraced house")
        flat = create_comp(property_type="Flat")
        assert comp_filter.filter_by_property_type([house, flat], "semi-detached house") == [house]

    def test_no_target_type_keeps_everything(self, comp_filter, create_comp):
        comps = [create_comp(property_type="Flat"), create_comp(property_type="Bungalow")]
        assert comp_filter.filter_by_property_type(comps, None) == comps


# =============================================================================
# Ranking
# =============================================================================

class TestRanking:
    """Distance ascending with a 0.1 mile tie band, then most recent first."""

    def test_closer_sale_ranks_first(self, comp_filter, create_comp):
        near = create_comp(distance_miles=0.3)
        far = create_comp(distance_miles=1.5)
        assert comp_filter.rank([far, near]) == [near, far]

    def test_distance_tie_falls_through_to_recency(self, comp_filter, create_comp):
        older_closer = create_comp(distance_miles=0.50, days_ago=200)
        newer_further = create_comp(distance_miles=0.55, days_ago=20)
        assert comp_filter.rank([older_closer, newer_further]) == [newer_further, older_closer]

    def test_unknown_distance_sorts_last(self, comp_filter, create_comp):
        unknown = create_comp(distance_miles=None, days_ago=1)
        known = create_comp(distance_miles=2.9, days_ago=300)
        assert comp_filter.rank([unknown, known]) == [known, unknown]

    def test_truncates_to_max_results(self, comp_filter, create_comp):
        comps = [create_comp(distance_miles=i * 0.5) for i in range(10)]
        ranked = comp_filter.rank(comps, max_results=5)
        assert len(ranked) == 5
        assert [c.distance_miles for c in ranked] == [0.0, 0.5, 1.0, 1.5, 2.0]


class TestFilterAndRank:
    """End-to-end filter pipeline."""

    def test_empty_input_gives_empty_output(self, comp_filter):
        assert comp_filter.filter_and_rank([], target_bedrooms=3) == []

    def test_output_respects_every_predicate(self, comp_filter, create_comp, reference_date):
        candidates = [
            create_comp(days_ago=10 * i + 5, bedrooms=b, property_type=t, distance_miles=0.2 * i)
            for i, (b, t) in enumerate([
                (3, "Semi-detached house"),
                (2, "Terraced house"),
                (5, "Detached house"),
                (3, "Flat"),
                (4, "semi-detached"),
                (3, "Semi-detached house"),
                (3, "Semi-detached house"),
                (3, "Semi-detached house"),
            ])
        ]
        candidates.append(create_comp(days_ago=400))

        result = comp_filter.filter_and_rank(
            candidates,
            target_bedrooms=3,
            target_property_type="Semi-detached house",
            max_age_months=12,
            max_results=5,
            bedroom_tolerance=1,
        )

        assert len(result) <= 5
        cutoff = reference_date - timedelta(days=12 * DAYS_PER_MONTH)
        for comp in result:
            assert comp.sale_date >= cutoff
            assert comp.bedrooms <= 0 or abs(comp.bedrooms - 3) <= 1
            assert property_types_match("Semi-detached house", comp.property_type)

    def test_does_not_mutate_input(self, comp_filter, create_comp):
        comps = [create_comp(distance_miles=2.0), create_comp(distance_miles=0.1)]
        snapshot = list(comps)
        comp_filter.filter_and_rank(comps)
        assert comps == snapshot


# =============================================================================
# Confidence
# =============================================================================

class TestConfidenceTier:
    """First matching tier wins."""

    def test_five_strong_comps_high(self):
        assert confidence_tier(5, 0.8) == Confidence.HIGH

    def test_five_weaker_comps_medium(self):
        assert confidence_tier(5, 0.7) == Confidence.MEDIUM

    def test_three_comps_medium(self):
        assert confidence_tier(3, 1.0) == Confidence.MEDIUM

    def test_three_weak_comps_low(self):
        assert confidence_tier(3, 0.5) == Confidence.LOW

    def test_two_comps_low(self):
        assert confidence_tier(2, 1.0) == Confidence.LOW

    def test_assess_treats_missing_confidence_as_one(self, create_comp):
        comps = [create_comp() for _ in range(5)]
        assert mean_confidence(comps) == 1.0
        assert assess_comparables(comps) == Confidence.HIGH

    def test_assess_uses_mean_of_scores(self, create_comp):
        comps = [create_comp(confidence=0.65) for _ in range(5)]
        assert assess_comparables(comps) == Confidence.MEDIUM

    def test_assess_empty_is_low(self):
        assert assess_comparables([]) == Confidence.LOW


class TestScoreComparable:
    """Per-comp confidence from recency, distance, similarity and completeness."""

    def test_ideal_comp_scores_one(self, create_comp, reference_date):
        comp = create_comp(days_ago=30, distance_miles=0.2, square_feet=900)
        score = score_comparable(comp, 3, "Semi-detached house", reference_date)
        assert score == pytest.approx(1.0)

    def test_missing_square_feet_costs_five_percent(self, create_comp, reference_date):
        comp = create_comp(days_ago=30, distance_miles=0.2)
        score = score_comparable(comp, 3, "Semi-detached house", reference_date)
        assert score == pytest.approx(0.95)

    def test_factors_multiply(self, create_comp, reference_date):
        comp = create_comp(
            days_ago=300,  # 10 months: 0.9
            distance_miles=1.5,  # 0.9
            bedrooms=4,  # one off: 0.9
            property_type="Terraced house",  # same family: 0.95
            square_feet=800,
        )
        score = score_comparable(comp, 3, "Semi-detached house", reference_date)
        assert score == pytest.approx(0.9 * 0.9 * 0.9 * 0.95)

    def test_old_distant_mismatched_comp(self, create_comp, reference_date):
        comp = create_comp(days_ago=700, distance_miles=5, bedrooms=6, property_type="Flat")
        score = score_comparable(comp, 3, "Detached house", reference_date)
        assert score == pytest.approx(0.7 * 0.7 * 0.8 * 0.85 * 0.95)

    def test_score_within_bounds(self, create_comp, reference_date):
        for days in (1, 200, 400, 800):
            for distance in (None, 0.1, 2.5, 9):
                comp = create_comp(days_ago=days, distance_miles=distance)
                assert 0.0 <= score_comparable(comp, 3, "house", reference_date) <= 1.0


# =============================================================================
# Configuration
# =============================================================================

class TestComparablesConfig:
    """Out-of-policy values are rejected with a field-level message."""

    def test_defaults(self):
        config = ComparablesConfig()
        assert config.to_dict() == {
            "search_radius_miles": 3.0,
            "max_results": 5,
            "max_age_months": 12,
            "bedroom_tolerance": 1,
            "min_confidence_score": 0.7,
        }

    @pytest.mark.parametrize("field_name,value", [
        ("search_radius_miles", 0.1),
        ("search_radius_miles", 10.5),
        ("max_results", 2),
        ("max_results", 21),
        ("max_age_months", 5),
        ("max_age_months", 25),
        ("bedroom_tolerance", 3),
        ("min_confidence_score", 1.1),
    ])
    def test_out_of_bounds_rejected(self, field_name, value):
        with pytest.raises(InvalidConfigurationError) as exc_info:
            ComparablesConfig(**{field_name: value})
        assert exc_info.value.field == field_name
        assert exc_info.value.message

    def test_bounds_inclusive(self):
        ComparablesConfig(
            search_radius_miles=0.25, max_results=20, max_age_months=6,
            bedroom_tolerance=0, min_confidence_score=1.0,
        )
        ComparablesConfig(
            search_radius_miles=10, max_results=3, max_age_months=24,
            bedroom_tolerance=2, min_confidence_score=0.0,
        )
