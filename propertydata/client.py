"""
PropertyData API client.

Metered lookups against api.propertydata.co.uk:
- /sold-prices: recent sales near a postcode (comparables)
- /rents: long-let weekly rent average near a postcode

Every successful request costs credits, so callers should wrap this
client in CachingPropertyDataClient.
"""

import logging
from typing import Optional

import requests

from core.sources import (
    ComparableFetch,
    ComparableSalesProvider,
    DataSourceError,
    RentalDataProvider,
    RentalFetch,
)

from .parser import PropertyDataParser


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_API_URL = "https://api.propertydata.co.uk"
USER_AGENT = "BMVValuationEngine/1.0"
REQUEST_TIMEOUT_SECONDS = 30

# Sample size requested from the rents endpoint
RENT_POINTS = 20

CREDITS_PER_REQUEST = 1


class PropertyDataError(DataSourceError):
    """PropertyData request failed or returned an error payload."""


class PropertyDataClient(ComparableSalesProvider, RentalDataProvider):
    """
    Thin HTTP client over the PropertyData REST API.

    Example:
        with PropertyDataClient(api_key="...") as client:
            fetch = client.fetch_comparable_sales("N7 8TY", bedrooms=3)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        })

    @classmethod
    def from_config(cls, config) -> "PropertyDataClient":
        """Build a client from a utils.config.Config."""
        return cls(
            api_key=config.propertydata_api_key,
            base_url=config.propertydata_api_url,
            timeout=config.request_timeout,
        )

    def _get(self, endpoint: str, params: dict) -> dict:
        """
        Issue a GET and return the decoded success payload.

        Raises:
            PropertyDataError: On missing key, network error, HTTP error or
                an error status in the payload
        """
        if not self.api_key:
            raise PropertyDataError("PropertyData API key not configured")

        url = f"{self.base_url}/{endpoint}"
        try:
            response = self._session.get(
                url,
                params={"key": self.api_key, **params},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise PropertyDataError(f"{endpoint} request failed: {e}") from e
        except ValueError as e:
            raise PropertyDataError(f"{endpoint} returned invalid JSON") from e

        if not isinstance(payload, dict) or payload.get("status") != "success":
            message = payload.get("message") if isinstance(payload, dict) else None
            raise PropertyDataError(f"{endpoint} error: {message or 'unexpected payload'}")

        return payload

    def fetch_comparable_sales(
        self,
        postcode: str,
        bedrooms: Optional[int] = None,
        radius_miles: float = 3,
        max_results: int = 50,
    ) -> ComparableFetch:
        """
        Fetch recent sales near a postcode.

        Sales further than radius_miles are dropped here; the API itself
        only takes a sample size.
        """
        params = {"postcode": postcode, "points": max_results}
        if bedrooms:
            params["bedrooms"] = bedrooms

        payload = self._get("sold-prices", params)
        comparables = [
            c for c in PropertyDataParser.parse_sold_prices(payload)
            if c.distance_miles is None or c.distance_miles <= radius_miles
        ]

        logger.info(
            "PropertyData sold-prices for %s: %d comparables within %s miles",
            postcode, len(comparables), radius_miles,
        )
        return ComparableFetch(
            comparables=comparables[:max_results],
            credits_used=CREDITS_PER_REQUEST,
        )

    def fetch_rental_estimate(
        self,
        postcode: str,
        bedrooms: Optional[int] = None,
        property_type: Optional[str] = None,
    ) -> RentalFetch:
        """Fetch the long-let weekly rent average near a postcode."""
        params = {"postcode": postcode, "points": RENT_POINTS}
        if bedrooms is not None:
            params["bedrooms"] = bedrooms
        if property_type:
            params["type"] = property_type

        payload = self._get("rents", params)
        try:
            estimate = PropertyDataParser.parse_rents(payload)
        except ValueError as e:
            raise PropertyDataError(f"Malformed rents payload for {postcode}: {e}") from e

        if estimate is None:
            logger.info("PropertyData rents for %s: no long-let data", postcode)
            return RentalFetch(estimate=None, credits_used=0)

        logger.info(
            "PropertyData rents for %s: weekly=%s monthly=%s",
            postcode, estimate.weekly_rent, estimate.monthly_rent,
        )
        return RentalFetch(estimate=estimate, credits_used=CREDITS_PER_REQUEST)

    def close(self) -> None:
        """Close the session."""
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
