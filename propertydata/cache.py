"""
Caching for metered PropertyData lookups.

CachingPropertyDataClient keeps each lookup result for a fixed TTL
(24 hours by default), keyed by postcode and filters. A cache hit costs
no credits. InMemoryComparablesStore holds comparables saved against a
subject so later calculations can skip the lookup entirely.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from core.comp_engine.models import ComparableSale
from core.sources import (
    ComparablesStore,
    ComparableFetch,
    ComparableSalesProvider,
    RentalDataProvider,
    RentalFetch,
)


logger = logging.getLogger(__name__)


DEFAULT_TTL_HOURS = 24


def normalise_postcode(postcode: str) -> str:
    """Cache key form of a postcode: upper case, no spaces."""
    return "".join((postcode or "").split()).upper()


class CachingPropertyDataClient(ComparableSalesProvider, RentalDataProvider):
    """
    TTL cache in front of a comparables and rental provider.

    Failed lookups are not cached.
    """

    def __init__(
        self,
        client,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            client: Provider implementing both lookups (e.g. PropertyDataClient)
            ttl_hours: How long a result stays fresh
            clock: Returns the current time in seconds
        """
        self.client = client
        self.ttl_seconds = ttl_hours * 3600
        self._clock = clock
        self._comparables: Dict[Tuple, Tuple[float, List[ComparableSale]]] = {}
        self._rents: Dict[Tuple, Tuple[float, RentalFetch]] = {}
        self._lock = threading.Lock()

    def _fresh(self, stored_at: float) -> bool:
        return self._clock() - stored_at < self.ttl_seconds

    def _evict_stale(self, entries: Dict[Tuple, tuple]) -> None:
        """Drop expired entries. Caller holds the lock."""
        stale = [key for key, (stored_at, _) in entries.items() if not self._fresh(stored_at)]
        for key in stale:
            del entries[key]
        if stale:
            logger.debug("Evicted %d stale cache entries", len(stale))

    def fetch_comparable_sales(
        self,
        postcode: str,
        bedrooms: Optional[int] = None,
        radius_miles: float = 3,
        max_results: int = 50,
    ) -> ComparableFetch:
        key = (normalise_postcode(postcode), bedrooms, radius_miles, max_results)

        with self._lock:
            entry = self._comparables.get(key)
            if entry and self._fresh(entry[0]):
                logger.debug("Comparables cache hit for %s", key[0])
                return ComparableFetch(comparables=list(entry[1]), credits_used=0)

        fetched = self.client.fetch_comparable_sales(postcode, bedrooms, radius_miles, max_results)

        with self._lock:
            self._evict_stale(self._comparables)
            self._comparables[key] = (self._clock(), list(fetched.comparables))
        return fetched

    def fetch_rental_estimate(
        self,
        postcode: str,
        bedrooms: Optional[int] = None,
        property_type: Optional[str] = None,
    ) -> RentalFetch:
        key = (normalise_postcode(postcode), bedrooms, (property_type or "").lower())

        with self._lock:
            entry = self._rents.get(key)
            if entry and self._fresh(entry[0]):
                logger.debug("Rental cache hit for %s", key[0])
                return RentalFetch(estimate=entry[1].estimate, credits_used=0)

        fetched = self.client.fetch_rental_estimate(postcode, bedrooms, property_type)

        with self._lock:
            self._evict_stale(self._rents)
            self._rents[key] = (self._clock(), fetched)
        return fetched

    def __len__(self) -> int:
        with self._lock:
            return len(self._comparables) + len(self._rents)

    def clear(self) -> None:
        """Drop every cached entry."""
        with self._lock:
            self._comparables.clear()
            self._rents.clear()


class InMemoryComparablesStore(ComparablesStore):
    """Comparables saved per subject, loaded at no cost."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._store: Dict[str, Tuple[float, List[ComparableSale]]] = {}
        self._lock = threading.Lock()

    def save_comparables(self, subject_id: str, comparables: List[ComparableSale]) -> None:
        """Replace the stored comparables for a subject."""
        with self._lock:
            self._store[subject_id] = (self._clock(), list(comparables))

    def load_cached_comparables(self, subject_id: str) -> List[ComparableSale]:
        with self._lock:
            entry = self._store.get(subject_id)
            return list(entry[1]) if entry else []

    def fetched_at(self, subject_id: str) -> Optional[float]:
        with self._lock:
            entry = self._store.get(subject_id)
            return entry[0] if entry else None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
