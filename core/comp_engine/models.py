"""
Data models for the comparable sales engine.

Defines the canonical comparable sale shape, the comparable search
configuration and the confidence tier. External payloads are normalised
into these structures before any scoring logic sees them.
"""

import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional


# =============================================================================
# Configuration Bounds
# =============================================================================

RADIUS_MIN_MILES = 0.25
RADIUS_MAX_MILES = 10.0
MAX_RESULTS_MIN = 3
MAX_RESULTS_MAX = 20
MAX_AGE_MONTHS_MIN = 6
MAX_AGE_MONTHS_MAX = 24
BEDROOM_TOLERANCE_MIN = 0
BEDROOM_TOLERANCE_MAX = 2


class InvalidConfigurationError(ValueError):
    """Raised when a comparables configuration value is outside policy bounds."""

    def __init__(self, field_name: str, message: str):
        super().__init__(f"{field_name}: {message}")
        self.field = field_name
        self.message = message


class Confidence(Enum):
    """
    Confidence tier for a set of comparables.

    High: >= 5 comps with mean confidence >= 0.8
    Medium: >= 3 comps with mean confidence >= 0.6
    Low: anything else
    """
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class ComparableSale:
    """
    A previously sold property used as market evidence.

    Either loaded from the local cache (no cost) or fetched fresh from
    the sold-prices provider (costs credits). Immutable once built.
    """
    address: str
    sale_price: float
    sale_date: date
    postcode: str = ""
    bedrooms: int = 0
    property_type: str = ""
    distance_miles: Optional[float] = None
    confidence: Optional[float] = None
    square_feet: Optional[int] = None

    # Rental enrichment (populated when the provider supplies it)
    monthly_rent: Optional[float] = None
    rental_yield: Optional[float] = None
    rental_yield_min: Optional[float] = None
    rental_yield_max: Optional[float] = None

    def __post_init__(self):
        """Validate sale fields after initialization."""
        if self.sale_price is None or not math.isfinite(self.sale_price) or self.sale_price <= 0:
            raise ValueError("sale_price must be a positive finite number")
        if self.bedrooms is None or self.bedrooms < 0:
            raise ValueError("bedrooms must be non-negative")
        if self.distance_miles is not None and not (
            math.isfinite(self.distance_miles) and self.distance_miles >= 0
        ):
            raise ValueError("distance_miles must be a non-negative finite number")
        if self.confidence is not None and not 0 <= self.confidence <= 1:
            raise ValueError("confidence must be between 0 and 1")
        for name in ("monthly_rent", "rental_yield", "rental_yield_min", "rental_yield_max"):
            value = getattr(self, name)
            if value is not None and not (math.isfinite(value) and value >= 0):
                raise ValueError(f"{name} must be a non-negative finite number")

    @property
    def effective_confidence(self) -> float:
        """Per-item confidence, defaulting to 1 when not scored."""
        return 1.0 if self.confidence is None else self.confidence

    @property
    def price_per_sqft(self) -> Optional[int]:
        """Sale price per square foot, if floor area is known."""
        if not self.square_feet or self.square_feet <= 0:
            return None
        return round(self.sale_price / self.square_feet)


@dataclass
class ComparablesConfig:
    """
    Comparable search configuration.

    Validated at construction time so that an out-of-policy value is
    rejected before any calculation runs.
    """
    search_radius_miles: float = 3.0
    max_results: int = 5
    max_age_months: int = 12
    bedroom_tolerance: int = 1
    min_confidence_score: float = 0.7

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not RADIUS_MIN_MILES <= self.search_radius_miles <= RADIUS_MAX_MILES:
            raise InvalidConfigurationError(
                "search_radius_miles",
                f"Search radius must be between {RADIUS_MIN_MILES} and {RADIUS_MAX_MILES:g} miles",
            )
        if not MAX_RESULTS_MIN <= self.max_results <= MAX_RESULTS_MAX:
            raise InvalidConfigurationError(
                "max_results",
                f"Max results must be between {MAX_RESULTS_MIN} and {MAX_RESULTS_MAX}",
            )
        if not MAX_AGE_MONTHS_MIN <= self.max_age_months <= MAX_AGE_MONTHS_MAX:
            raise InvalidConfigurationError(
                "max_age_months",
                f"Max age must be between {MAX_AGE_MONTHS_MIN} and {MAX_AGE_MONTHS_MAX} months",
            )
        if not BEDROOM_TOLERANCE_MIN <= self.bedroom_tolerance <= BEDROOM_TOLERANCE_MAX:
            raise InvalidConfigurationError(
                "bedroom_tolerance",
                f"Bedroom tolerance must be between {BEDROOM_TOLERANCE_MIN} and {BEDROOM_TOLERANCE_MAX}",
            )
        if not 0 <= self.min_confidence_score <= 1:
            raise InvalidConfigurationError(
                "min_confidence_score",
                "Min confidence score must be between 0.0 and 1.0",
            )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "search_radius_miles": self.search_radius_miles,
            "max_results": self.max_results,
            "max_age_months": self.max_age_months,
            "bedroom_tolerance": self.bedroom_tolerance,
            "min_confidence_score": self.min_confidence_score,
        }
