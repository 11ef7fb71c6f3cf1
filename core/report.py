"""
Validation report renderer.

Turns a structured ValuationResult into the multi-section text report
stored alongside the deal. Pure presentation: every figure shown here is
already a field on the result.
"""

from typing import List

from utils.formatting import format_currency, format_month_year, format_percent

from .comp_engine.models import Confidence
from .models import MarketValueSource, RentalDataSource, ValuationResult
from .rental import NET_YIELD_FACTOR, yield_band
from .validator import MIN_BMV_PERCENT, MIN_PROFIT


REPORT_WIDTH = 60
HEAVY_RULE = "=" * REPORT_WIDTH
LIGHT_RULE = "-" * REPORT_WIDTH

RENTAL_SOURCE_LINES = {
    RentalDataSource.PROPERTYDATA_API: (
        "Data Source: PropertyData API (Real market data)",
        "Confidence: HIGH (Based on actual rental listings)",
    ),
    RentalDataSource.MANUAL_ENTRY: (
        "Data Source: Manual entry",
        "Confidence: MEDIUM (User provided estimate)",
    ),
}

RATING_BANNERS = {
    "Excellent opportunity": (
        "*** EXCELLENT BMV OPPORTUNITY ***",
        "Significantly below market value - Strong investment potential!",
    ),
    "Strong deal": (
        "** STRONG DEAL **",
        "Good profit margins with solid BMV percentage.",
    ),
    "Acceptable deal": (
        "ACCEPTABLE DEAL",
        "Meets minimum criteria for BMV investment.",
    ),
}


def _gbp(amount: float) -> str:
    return format_currency(amount)


def _pass_fail(passed: bool, requirement: str) -> str:
    return "PASS" if passed else f"FAIL (need {requirement})"


def _market_value_section(result: ValuationResult) -> List[str]:
    lines = ["MARKET VALUE ANALYSIS", LIGHT_RULE]
    source = result.market_value_source

    if source == MarketValueSource.COMPARABLE_SALES and result.comparables:
        lines.append(
            f"  Comparable Sales: {_gbp(result.market_value)} "
            f"({result.comparables_count} properties)"
        )
        lines.append("  Data Source: Real sold prices")
        lines.append(
            f"  Confidence: {result.comparables_confidence.value} "
            f"(Based on actual market data)"
        )
    elif source == MarketValueSource.MANUAL_ENTRY:
        lines.append(f"  Manual Entry: {_gbp(result.market_value)}")
        lines.append("  Data Source: User provided estimate")
        lines.append(f"  Confidence: {Confidence.MEDIUM.value} (Manual valuation)")
    else:
        lines.append(f"  Estimated Value: {_gbp(result.market_value)}")
        lines.append("  Data Source: Algorithm estimation")
        lines.append(f"  Confidence: {Confidence.LOW.value} (Estimation only)")

    lines.append("")
    return lines


def _comparables_section(
    result: ValuationResult,
    search_radius_miles: float,
    max_age_months: int,
    postcode_known: bool,
) -> List[str]:
    if result.comparables:
        lines = [
            f"COMPARABLE PROPERTIES (within {search_radius_miles:g} miles, "
            f"last {max_age_months} months)",
            LIGHT_RULE,
        ]
        for i, comp in enumerate(result.comparables, start=1):
            distance = ""
            if comp.distance_miles:
                distance = f" | {comp.distance_miles:.1f} mi"
            lines.append(f"  {i}. {comp.address}")
            lines.append(
                f"     {_gbp(comp.sale_price)} | {comp.bedrooms} bed | "
                f"{format_month_year(comp.sale_date)}{distance}"
            )
        lines.append("")
        return lines

    if postcode_known:
        note = (
            "Market value is estimated - consider manual verification"
            if result.validation_passed
            else "Market value is estimated - accuracy may be limited"
        )
        return [
            f"NO COMPARABLE PROPERTIES FOUND within {search_radius_miles:g} miles",
            note,
            "",
        ]

    return []


def _bmv_section(result: ValuationResult) -> List[str]:
    header = "BMV ANALYSIS"
    if not result.validation_passed:
        header += f": {_pass_fail(result.bmv_passed, f'{MIN_BMV_PERCENT:g}%+')}"
    return [
        header,
        LIGHT_RULE,
        f"  BMV Percentage: {format_percent(result.bmv_score)}",
        f"  Asking Price: {_gbp(result.asking_price)}",
        f"  Market Value: {_gbp(result.market_value)}",
        f"  Discount: {_gbp(result.market_value - result.asking_price)}",
        "",
    ]


def _offer_section(result: ValuationResult) -> List[str]:
    if result.validation_passed:
        header = "OFFER DETAILS"
    else:
        header = (
            "PROFIT ANALYSIS: "
            f"{_pass_fail(result.profit_passed, _gbp(MIN_PROFIT) + '+')}"
        )
    lines = [
        header,
        LIGHT_RULE,
        f"  Calculated Offer: {_gbp(result.offer_amount)} "
        f"({format_percent(result.offer_percentage)} of market value)",
    ]
    if result.refurb_cost > 0:
        lines.append(f"  Refurb Cost: {_gbp(result.refurb_cost)}")
    lines.append(f"  Net Profit: {_gbp(result.profit_potential)}")
    lines.append("")
    return lines


def _rental_section(result: ValuationResult) -> List[str]:
    if result.annual_rent <= 0:
        follow_up = (
            "Add manual rental estimates to see yield analysis and cash flow projections."
            if result.validation_passed
            else "Add manual rental estimates to see if this could work as a buy-to-let opportunity."
        )
        return [
            "RENTAL DATA NOT AVAILABLE",
            LIGHT_RULE,
            "  No rental estimate was available for this property.",
            f"  {follow_up}",
            "",
        ]

    header = "RENTAL YIELD ANALYSIS"
    if result.has_good_yield and not result.validation_passed:
        header += " (PASS)"
    lines = [header, LIGHT_RULE]

    for line in RENTAL_SOURCE_LINES.get(result.rental_data_source, ()):
        lines.append(f"  {line}")
    if (
        result.rental_data_source == RentalDataSource.PROPERTYDATA_API
        and result.rent_confidence_range
    ):
        low, high = result.rent_confidence_range
        lines.append(f"  Market Range: {_gbp(low)} - {_gbp(high)}/month")
    lines.append("")

    band = yield_band(result.gross_yield)

    lines.append(f"  Monthly Rent: {_gbp(result.monthly_rent)}")
    if result.weekly_rent > 0:
        lines.append(f"  Weekly Rent: {_gbp(result.weekly_rent)}")
    lines.append(f"  Annual Rent: {_gbp(result.annual_rent)}")
    lines.append(f"  Gross Yield: {format_percent(result.gross_yield, 2)} ({band})")
    cost_percent = round((1 - NET_YIELD_FACTOR) * 100)
    lines.append(
        f"  Net Yield: {format_percent(result.net_yield, 2)} (After {cost_percent}% costs)"
    )
    if result.rent_per_area is not None:
        lines.append(f"  Rent per Sq Ft: {format_currency(result.rent_per_area, decimals=2)}/month")
    if result.rent_vs_local_average is not None:
        if result.rent_vs_local_average > 0:
            comparison = f"+{result.rent_vs_local_average:.1f}% above"
        else:
            comparison = f"{result.rent_vs_local_average:.1f}% below"
        lines.append(f"  vs Local Average: {comparison} market")
    if result.estimated_monthly_cash_flow is not None:
        lines.append(
            f"  Est. Monthly Cash Flow: {format_currency(result.estimated_monthly_cash_flow, decimals=2)}"
        )

    if result.has_good_yield:
        if result.validation_passed:
            lines.append("  Strong rental yield makes this an excellent buy-to-let opportunity!")
        else:
            lines.append(
                "  Note: Strong rental yield - may still work as buy-to-let despite low BMV"
            )
    lines.append("")
    return lines


def _credits_section(result: ValuationResult) -> List[str]:
    if result.credits_used > 0:
        return [f"PropertyData API Credits Used: {result.credits_used}", ""]
    return []


def _verdict_section(result: ValuationResult) -> List[str]:
    if result.validation_passed:
        banner, summary = RATING_BANNERS[result.rating.value]
        return [HEAVY_RULE, banner, summary]

    lines = ["REASONS FOR FAILURE", LIGHT_RULE]
    for i, reason in enumerate(result.failure_reasons, start=1):
        lines.append(f"  {i}. {reason.value}")
    lines.append("")
    lines.append(HEAVY_RULE)
    lines.append("This deal does not meet minimum investment criteria.")
    return lines


def render_validation_report(
    result: ValuationResult,
    search_radius_miles: float = 3,
    max_age_months: int = 12,
    postcode_known: bool = True,
) -> str:
    """
    Render the human-readable validation report.

    Args:
        result: Structured valuation result
        search_radius_miles: Radius used for the comparable search
        max_age_months: Age window used for the comparable search
        postcode_known: Whether a comparable lookup was possible at all

    Returns:
        Multi-line report text
    """
    title = "DEAL VALIDATED" if result.validation_passed else "DEAL FAILED VALIDATION"
    lines = [title, HEAVY_RULE, ""]

    lines += _market_value_section(result)
    lines += _comparables_section(result, search_radius_miles, max_age_months, postcode_known)
    lines += _bmv_section(result)
    lines += _offer_section(result)
    lines += _rental_section(result)
    lines += _credits_section(result)
    lines += _verdict_section(result)

    return "\n".join(lines)
