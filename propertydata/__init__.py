"""
PropertyData integration.

Available components:
- PropertyDataClient: Metered /sold-prices and /rents lookups
- CachingPropertyDataClient: 24h cache in front of the client
- InMemoryComparablesStore: Comparables saved per subject
- PropertyDataParser: Payload normalisation
"""

from .cache import CachingPropertyDataClient, InMemoryComparablesStore
from .client import PropertyDataClient, PropertyDataError
from .parser import PropertyDataParser, extract_postcode, map_property_type

__all__ = [
    "PropertyDataClient",
    "PropertyDataError",
    "CachingPropertyDataClient",
    "InMemoryComparablesStore",
    "PropertyDataParser",
    "extract_postcode",
    "map_property_type",
]
