"""
External data source contracts.

The engine consumes comparable sales and rental estimates through these
interfaces. Concrete implementations (PropertyData HTTP client, caches,
persistence-backed loaders) live with the calling application.

Providers report how many metered credits each lookup consumed so the
engine can account for cost without managing any cache itself.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from .comp_engine.models import ComparableSale
from .models import RentalEstimate


class DataSourceError(Exception):
    """An external lookup failed. The engine degrades to its fallback."""


@dataclass(frozen=True)
class ComparableFetch:
    """Result of a sold-prices lookup."""
    comparables: List[ComparableSale] = field(default_factory=list)
    credits_used: int = 0


@dataclass(frozen=True)
class RentalFetch:
    """Result of a rental-estimate lookup."""
    estimate: Optional[RentalEstimate] = None
    credits_used: int = 0


class ComparableSalesProvider(ABC):
    """Metered sold-prices lookup."""

    @abstractmethod
    def fetch_comparable_sales(
        self,
        postcode: str,
        bedrooms: Optional[int] = None,
        radius_miles: float = 3,
        max_results: int = 50,
    ) -> ComparableFetch:
        """
        Fetch recently sold properties near a postcode.

        Args:
            postcode: UK postcode of the subject property
            bedrooms: Subject bedroom count (optional)
            radius_miles: Search radius
            max_results: Maximum raw results to return

        Returns:
            ComparableFetch (empty comparables if none found)

        Raises:
            DataSourceError: On network or payload errors
        """
        pass


class RentalDataProvider(ABC):
    """Metered area rent lookup."""

    @abstractmethod
    def fetch_rental_estimate(
        self,
        postcode: str,
        bedrooms: Optional[int] = None,
        property_type: Optional[str] = None,
    ) -> RentalFetch:
        """
        Fetch an area rent estimate for a postcode.

        Returns:
            RentalFetch (estimate None if unavailable)

        Raises:
            DataSourceError: On network or payload errors
        """
        pass


class CachedComparablesLoader(ABC):
    """Zero-cost source of previously fetched comparables."""

    @abstractmethod
    def load_cached_comparables(self, subject_id: str) -> List[ComparableSale]:
        """
        Load stored comparables for a subject.

        Returns:
            List of comparable sales (empty if none stored)
        """
        pass


class ComparablesStore(CachedComparablesLoader):
    """Per-subject comparables that can also be written and aged."""

    @abstractmethod
    def save_comparables(self, subject_id: str, comparables: List[ComparableSale]) -> None:
        """Replace the stored comparables for a subject."""
        pass

    @abstractmethod
    def fetched_at(self, subject_id: str) -> Optional[float]:
        """
        When the subject's comparables were last saved.

        Returns:
            Epoch seconds, or None if nothing is stored
        """
        pass
