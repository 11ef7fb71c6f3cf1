"""
Formatting and rounding utilities.
"""

import math
from datetime import date


def round_half_up(value: float) -> int:
    """
    Round to the nearest whole unit, halves away from zero for positives.

    Python's built-in round() uses banker's rounding, which would turn
    an average of 120,500.5 into 120,500 rather than 120,501.
    """
    return int(math.floor(value + 0.5))


def format_currency(amount: float, currency: str = "GBP", decimals: int = 0) -> str:
    """
    Format an amount as currency.

    Args:
        amount: The amount in whole units (e.g., pounds, not pence).
        currency: Currency code (default GBP).
        decimals: Number of decimal places to show.

    Returns:
        Formatted currency string.
    """
    symbols = {
        "GBP": "£",
        "USD": "$",
        "EUR": "€",
    }
    symbol = symbols.get(currency, currency + " ")
    if amount < 0:
        return f"-{symbol}{abs(amount):,.{decimals}f}"
    return f"{symbol}{amount:,.{decimals}f}"


def format_percent(value: float, decimals: int = 1) -> str:
    """
    Format a number as a percentage.

    Args:
        value: The percentage value.
        decimals: Number of decimal places.

    Returns:
        Formatted percentage string.
    """
    return f"{value:.{decimals}f}%"


def format_month_year(value: date) -> str:
    """Format a sale date as e.g. 'Mar 2024'."""
    return value.strftime("%b %Y")
