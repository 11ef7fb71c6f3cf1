"""
PropertyData payload parser.

Normalises sold-prices and rents payloads into ComparableSale and
RentalEstimate. Field names vary between endpoints and API versions, so
each value is read from the first field name present. Records that fail
validation are rejected and logged rather than failing the whole payload.
"""

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Iterable, List, Optional

from core.comp_engine.models import ComparableSale
from core.models import RentalEstimate


logger = logging.getLogger(__name__)


# =============================================================================
# Field Name Fallbacks
# =============================================================================

PRICE_FIELDS = ("price", "sale_price", "salePrice", "amount")
DATE_FIELDS = ("date", "sale_date", "saleDate", "date_of_transfer")
BEDROOM_FIELDS = ("bedrooms", "beds", "bedroom_count")
TYPE_FIELDS = ("type", "property_type", "propertyType")
DISTANCE_FIELDS = ("distance", "distance_miles", "distanceMiles")
ADDRESS_FIELDS = ("address", "street_address", "full_address", "fullAddress")
SQUARE_FEET_FIELDS = ("sqf", "square_feet", "squareFeet")
POSTCODE_FIELDS = ("postcode", "post_code")

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")

# Matches N7 8TY, SW1A 1AA, M1 1AE and unspaced forms
POSTCODE_PATTERN = re.compile(r"\b([A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2})\b", re.IGNORECASE)


def _first(record: dict, names: Iterable[str]) -> Any:
    """Value of the first present, non-empty field."""
    for name in names:
        value = record.get(name)
        if value is not None and value != "":
            return value
    return None


def _to_number(value: Any) -> Optional[float]:
    """
    Parse a numeric field, accepting "£" and thousands separators.

    Raises:
        ValueError: If the value is not a finite number
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = str(value).replace("£", "").replace(",", "").strip()
        if not cleaned:
            return None
        number = float(cleaned)
    if not math.isfinite(number):
        raise ValueError(f"Not a finite number: {value!r}")
    return number


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised sale date: {value!r}")


def map_property_type(property_type: Optional[str]) -> Optional[str]:
    """
    Map a PropertyData property type to terraced / semi / detached / flat.

    Returns None when the type is missing or not recognised.
    """
    if not property_type:
        return None

    normalised = property_type.lower().strip()

    if "flat" in normalised or "apartment" in normalised:
        return "flat"
    if "semi" in normalised:
        return "semi"
    if "detached" in normalised:
        return "detached"
    if "terrace" in normalised:
        return "terraced"
    return None


def extract_postcode(address: str) -> Optional[str]:
    """
    Extract a UK postcode from an address string.

    Returns:
        Upper-cased postcode with single spacing, or None if absent
    """
    if not address:
        return None
    match = POSTCODE_PATTERN.search(address)
    if not match:
        return None
    postcode = re.sub(r"\s+", "", match.group(1)).upper()
    return f"{postcode[:-3]} {postcode[-3:]}"


class PropertyDataParser:
    """Converts raw PropertyData payloads to domain objects."""

    @classmethod
    def parse_sold_prices(cls, payload: dict) -> List[ComparableSale]:
        """
        Parse a sold-prices payload.

        Args:
            payload: Decoded JSON body

        Returns:
            Valid comparable sales, in payload order
        """
        records = cls._records(payload)
        comparables = []
        for record in records:
            if not isinstance(record, dict):
                logger.warning("Rejected sold-price record of type %s", type(record).__name__)
                continue
            try:
                comparables.append(cls.parse_comparable(record))
            except (ValueError, TypeError) as e:
                logger.warning(
                    "Rejected sold-price record %r: %s",
                    _first(record, ADDRESS_FIELDS), e,
                )
        logger.debug("Parsed %d of %d sold-price records", len(comparables), len(records))
        return comparables

    @classmethod
    def parse_comparable(cls, record: dict) -> ComparableSale:
        """
        Parse a single sold-price record.

        Raises:
            ValueError: If a required field is missing or invalid
        """
        price = _to_number(_first(record, PRICE_FIELDS))
        if price is None:
            raise ValueError("missing sale price")

        sale_date = _first(record, DATE_FIELDS)
        if sale_date is None:
            raise ValueError("missing sale date")

        address = _first(record, ADDRESS_FIELDS) or ""
        postcode = _first(record, POSTCODE_FIELDS) or extract_postcode(address) or ""

        bedrooms = _to_number(_first(record, BEDROOM_FIELDS))
        distance = _to_number(_first(record, DISTANCE_FIELDS))
        square_feet = _to_number(_first(record, SQUARE_FEET_FIELDS))
        property_type = str(_first(record, TYPE_FIELDS) or "").replace("_", " ")

        return ComparableSale(
            address=str(address),
            sale_price=price,
            sale_date=_to_date(sale_date),
            postcode=str(postcode),
            bedrooms=int(bedrooms) if bedrooms is not None else 0,
            property_type=property_type,
            distance_miles=distance,
            square_feet=int(square_feet) if square_feet else None,
        )

    @classmethod
    def parse_rents(cls, payload: dict) -> Optional[RentalEstimate]:
        """
        Parse a rents payload.

        A malformed 70% range falls back to the default +/-10% range.

        Returns:
            RentalEstimate from the long-let weekly average, or None when the
            payload carries no long-let data

        Raises:
            ValueError: If the long-let block or its average is malformed
        """
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return None

        long_let = data.get("long_let") or {}
        if not isinstance(long_let, dict):
            raise ValueError(f"long_let must be an object, got {type(long_let).__name__}")

        weekly = _to_number(long_let.get("average"))
        if not weekly or weekly <= 0:
            return None

        return RentalEstimate.from_weekly(weekly, cls._weekly_range(long_let.get("70pc_range")))

    @staticmethod
    def _weekly_range(value: Any) -> Optional[tuple]:
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            return None
        try:
            low, high = _to_number(value[0]), _to_number(value[1])
        except ValueError as e:
            logger.warning("Ignoring malformed rent range %r: %s", value, e)
            return None
        if low is None or high is None or low <= 0 or high < low:
            logger.warning("Ignoring malformed rent range %r", value)
            return None
        return (low, high)

    @staticmethod
    def _records(payload: Any) -> list:
        if isinstance(payload, list):
            return payload
        if not isinstance(payload, dict):
            return []
        data = payload.get("data")
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in ("raw_data", "sold_properties", "properties"):
                if isinstance(data.get(key), list):
                    return data[key]
        return []
