"""
Data models for the valuation engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from utils.formatting import round_half_up

from .comp_engine.models import ComparableSale, Confidence


# Weeks per month used for weekly <-> monthly rent conversion
WEEKS_PER_MONTH = 4.333


class MissingAskingPriceError(ValueError):
    """Raised when a calculation is requested without an asking price."""

    def __init__(self, message: str = "Asking price is required for BMV calculation"):
        super().__init__(message)


class _LookupEnum(Enum):
    """Enum with a strict string parser for boundary input."""

    @classmethod
    def from_string(cls, value: Optional[str]):
        """
        Convert string to enum member, case-insensitive.

        Returns None for empty input. Raises ValueError for unknown values
        so that a typo never silently falls through a comparison chain.
        """
        if value is None or not str(value).strip():
            return None
        normalised = str(value).lower().strip().replace("-", "_").replace(" ", "_")
        for member in cls:
            if member.value == normalised:
                return member
        raise ValueError(f"Invalid {cls.__name__}: {value}")


class Condition(_LookupEnum):
    """Physical condition of the subject property."""
    EXCELLENT = "excellent"
    GOOD = "good"
    NEEDS_WORK = "needs_work"
    NEEDS_MODERNISATION = "needs_modernisation"
    POOR = "poor"


class UrgencyLevel(_LookupEnum):
    """How quickly the vendor needs to sell."""
    URGENT = "urgent"
    SOON = "soon"
    FLEXIBLE = "flexible"


class MarketValueSource(Enum):
    """Where the market value figure came from."""
    COMPARABLE_SALES = "comparable_sales"
    MANUAL_ENTRY = "manual_entry"
    ESTIMATED = "estimated"


class RentalDataSource(Enum):
    """Where the rent figure came from."""
    MANUAL_ENTRY = "manual_entry"
    PROPERTYDATA_API = "propertydata_api"
    NONE = "none"


class DealRating(Enum):
    """Qualitative rating for a validated deal."""
    EXCELLENT = "Excellent opportunity"
    STRONG = "Strong deal"
    ACCEPTABLE = "Acceptable deal"


class FailureReason(Enum):
    """Independent reasons a deal can fail validation."""
    BMV_TOO_LOW = "BMV too low - asking price not discounted enough from market value"
    INSUFFICIENT_PROFIT = "Insufficient profit margin after offer and refurb costs"


@dataclass(frozen=True)
class SubjectProperty:
    """
    The property being evaluated.

    Owned by the calling system; the engine reads it and never mutates it.
    """
    asking_price: Optional[float]
    postcode: Optional[str] = None
    address: str = ""
    bedrooms: Optional[int] = None
    property_type: Optional[str] = None
    square_feet: Optional[int] = None
    condition: Optional[Condition] = None
    urgency_level: Optional[UrgencyLevel] = None
    motivation_score: Optional[float] = None
    estimated_refurb_cost: Optional[float] = None
    manual_market_value: Optional[float] = None
    manual_monthly_rent: Optional[float] = None
    manual_annual_rent: Optional[float] = None
    local_average_rent: Optional[float] = None

    # Identifier used to load cached comparables
    subject_id: Optional[str] = None

    def __post_init__(self):
        """Validate property fields after initialization."""
        if self.motivation_score is not None and not 0 <= self.motivation_score <= 10:
            raise ValueError("motivation_score must be between 0 and 10")
        if self.bedrooms is not None and self.bedrooms < 0:
            raise ValueError("bedrooms must be non-negative")
        if self.square_feet is not None and self.square_feet < 0:
            raise ValueError("square_feet must be non-negative")
        for name in (
            "asking_price",
            "estimated_refurb_cost",
            "manual_market_value",
            "manual_monthly_rent",
            "manual_annual_rent",
            "local_average_rent",
        ):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative")

    @property
    def has_asking_price(self) -> bool:
        """Whether the minimum data for a calculation is present."""
        return bool(self.asking_price)


@dataclass(frozen=True)
class RentalEstimate:
    """Area rent signal, weekly and monthly, with a monthly confidence range."""
    weekly_rent: int
    monthly_rent: int
    source: RentalDataSource
    confidence_range: Optional[Tuple[int, int]] = None

    @classmethod
    def from_weekly(
        cls,
        weekly_rent: float,
        weekly_range: Optional[Tuple[float, float]] = None,
        source: RentalDataSource = RentalDataSource.PROPERTYDATA_API,
    ) -> "RentalEstimate":
        """
        Build an estimate from a weekly average.

        The range defaults to +/-10% of the weekly figure and is converted
        to monthly with the same factor as the rent itself.
        """
        if weekly_range is None:
            weekly_range = (weekly_rent * 0.9, weekly_rent * 1.1)
        return cls(
            weekly_rent=round_half_up(weekly_rent),
            monthly_rent=round_half_up(weekly_rent * WEEKS_PER_MONTH),
            source=source,
            confidence_range=(
                round_half_up(weekly_range[0] * WEEKS_PER_MONTH),
                round_half_up(weekly_range[1] * WEEKS_PER_MONTH),
            ),
        )

    @classmethod
    def from_monthly(
        cls,
        monthly_rent: float,
        source: RentalDataSource = RentalDataSource.MANUAL_ENTRY,
    ) -> "RentalEstimate":
        """Build an estimate from a manually entered monthly rent."""
        return cls(
            weekly_rent=round_half_up(monthly_rent / WEEKS_PER_MONTH),
            monthly_rent=monthly_rent,
            source=source,
        )


@dataclass(frozen=True)
class ValuationResult:
    """
    Complete valuation result for a subject property.

    A pure function of the inputs plus the resolved external data.
    The caller decides whether to persist it.
    """
    # Market value
    asking_price: float
    market_value: float
    market_value_source: MarketValueSource
    bmv_score: float

    # Offer
    offer_amount: float
    offer_percentage: float
    refurb_cost: float
    profit_potential: float

    # Verdict
    validation_passed: bool
    validation_notes: str
    rating: Optional[DealRating] = None
    failure_reasons: Tuple[FailureReason, ...] = ()

    # Comparables
    comparables: Tuple[ComparableSale, ...] = ()
    comparables_confidence: Confidence = Confidence.LOW

    # Rental
    monthly_rent: float = 0
    weekly_rent: int = 0
    annual_rent: float = 0
    gross_yield: float = 0.0
    net_yield: float = 0.0
    rent_per_area: Optional[float] = None
    rent_vs_local_average: Optional[float] = None
    estimated_monthly_cash_flow: Optional[float] = None
    has_good_yield: bool = False
    rental_data_source: RentalDataSource = RentalDataSource.NONE
    rent_confidence_range: Optional[Tuple[int, int]] = None

    # Cost accounting
    credits_used: int = 0

    @property
    def comparables_count(self) -> int:
        """Number of comps the market value was based on."""
        return len(self.comparables)

    @property
    def bmv_passed(self) -> bool:
        return FailureReason.BMV_TOO_LOW not in self.failure_reasons

    @property
    def profit_passed(self) -> bool:
        return FailureReason.INSUFFICIENT_PROFIT not in self.failure_reasons

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        rent_range = None
        if self.rent_confidence_range:
            rent_range = {
                "min": self.rent_confidence_range[0],
                "max": self.rent_confidence_range[1],
            }
        return {
            "asking_price": self.asking_price,
            "market_value": self.market_value,
            "market_value_source": self.market_value_source.value,
            "bmv_score": self.bmv_score,
            "offer_amount": self.offer_amount,
            "offer_percentage": self.offer_percentage,
            "refurb_cost": self.refurb_cost,
            "profit_potential": self.profit_potential,
            "validation_passed": self.validation_passed,
            "validation_notes": self.validation_notes,
            "rating": self.rating.value if self.rating else None,
            "failure_reasons": [r.value for r in self.failure_reasons],
            "comparables_count": self.comparables_count,
            "comparables_confidence": self.comparables_confidence.value,
            "credits_used": self.credits_used,
            "gross_yield": self.gross_yield,
            "net_yield": self.net_yield,
            "monthly_rent": self.monthly_rent,
            "weekly_rent": self.weekly_rent,
            "annual_rent": self.annual_rent,
            "rent_per_area": self.rent_per_area,
            "rent_vs_local_average": self.rent_vs_local_average,
            "estimated_monthly_cash_flow": self.estimated_monthly_cash_flow,
            "has_good_yield": self.has_good_yield,
            "rental_data_source": self.rental_data_source.value,
            "rent_confidence_range": rent_range,
        }
