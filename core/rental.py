"""
Rental yield calculations.
"""

from dataclasses import dataclass
from typing import Optional


# Flat cost assumption for net yield (management, maintenance, voids)
NET_YIELD_FACTOR = 0.85

# Monthly running-cost proxy as a fraction of price (4.8% a year)
MONTHLY_COST_FACTOR = 0.004

GOOD_YIELD_PERCENT = 6.0
ACCEPTABLE_YIELD_PERCENT = 4.0


@dataclass(frozen=True)
class RentalMetrics:
    """Derived rental figures for a subject property."""
    monthly_rent: float
    annual_rent: float
    gross_yield: float
    net_yield: float
    rent_per_area: Optional[float] = None
    rent_vs_local_average: Optional[float] = None
    estimated_monthly_cash_flow: Optional[float] = None

    @property
    def has_rent(self) -> bool:
        return self.annual_rent > 0

    @property
    def has_good_yield(self) -> bool:
        return self.gross_yield >= GOOD_YIELD_PERCENT

    @property
    def yield_band(self) -> str:
        return yield_band(self.gross_yield)


def yield_band(gross_yield: float) -> str:
    """Strong / Acceptable / Low label for a gross yield."""
    if gross_yield >= GOOD_YIELD_PERCENT:
        return "Strong"
    if gross_yield >= ACCEPTABLE_YIELD_PERCENT:
        return "Acceptable"
    return "Low"


class RentalYieldCalculator:
    """Derives yield and rent comparisons from a monthly rent figure."""

    def calculate(
        self,
        asking_price: float,
        monthly_rent: float = 0,
        annual_rent: Optional[float] = None,
        square_feet: Optional[int] = None,
        local_average_rent: Optional[float] = None,
    ) -> RentalMetrics:
        """
        Calculate rental metrics.

        Args:
            asking_price: Purchase price used as the yield denominator
            monthly_rent: Monthly rent (0 if unknown)
            annual_rent: Optional annual override (defaults to monthly x 12)
            square_feet: Floor area for rent per sq ft
            local_average_rent: Area average monthly rent for comparison

        Returns:
            RentalMetrics; optional figures are None when there is no rent
        """
        monthly_rent = monthly_rent or 0
        annual_rent = annual_rent or monthly_rent * 12

        if asking_price <= 0 or annual_rent <= 0:
            return RentalMetrics(
                monthly_rent=monthly_rent,
                annual_rent=max(annual_rent, 0),
                gross_yield=0.0,
                net_yield=0.0,
            )

        gross_yield = (annual_rent / asking_price) * 100

        rent_per_area = None
        if square_feet and square_feet > 0 and monthly_rent > 0:
            rent_per_area = monthly_rent / square_feet

        rent_vs_local_average = None
        if local_average_rent and local_average_rent > 0 and monthly_rent > 0:
            rent_vs_local_average = (
                (monthly_rent - local_average_rent) / local_average_rent
            ) * 100

        return RentalMetrics(
            monthly_rent=monthly_rent,
            annual_rent=annual_rent,
            gross_yield=gross_yield,
            net_yield=gross_yield * NET_YIELD_FACTOR,
            rent_per_area=rent_per_area,
            rent_vs_local_average=rent_vs_local_average,
            estimated_monthly_cash_flow=monthly_rent - asking_price * MONTHLY_COST_FACTOR,
        )
