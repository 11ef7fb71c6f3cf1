"""
Configuration management.
"""

import os
from dataclasses import dataclass, field


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # PropertyData API
    propertydata_api_url: str = field(
        default_factory=lambda: os.getenv("PROPERTYDATA_API_URL", "https://api.propertydata.co.uk")
    )
    propertydata_api_key: str = field(
        default_factory=lambda: os.getenv("PROPERTYDATA_API_KEY", "")
    )
    request_timeout: int = field(default_factory=lambda: int(os.getenv("REQUEST_TIMEOUT", "30")))
    lookup_timeout: float = field(default_factory=lambda: float(os.getenv("LOOKUP_TIMEOUT", "30")))

    # Cache
    comparables_cache_ttl_hours: int = field(
        default_factory=lambda: int(os.getenv("COMPARABLES_CACHE_TTL_HOURS", "24"))
    )

    # Comparables
    search_radius_miles: float = field(
        default_factory=lambda: float(os.getenv("SEARCH_RADIUS_MILES", "3"))
    )
    max_results: int = field(default_factory=lambda: int(os.getenv("MAX_RESULTS", "5")))
    max_age_months: int = field(default_factory=lambda: int(os.getenv("MAX_AGE_MONTHS", "12")))
    bedroom_tolerance: int = field(
        default_factory=lambda: int(os.getenv("BEDROOM_TOLERANCE", "1"))
    )
    min_confidence_score: float = field(
        default_factory=lambda: float(os.getenv("MIN_CONFIDENCE_SCORE", "0.7"))
    )

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    @property
    def propertydata_enabled(self) -> bool:
        """Whether metered lookups can be made."""
        return bool(self.propertydata_api_key)

    def comparables_config(self):
        """
        Build the validated comparable search configuration.

        Raises:
            InvalidConfigurationError: If an environment value is out of bounds
        """
        from core.comp_engine.models import ComparablesConfig

        return ComparablesConfig(
            search_radius_miles=self.search_radius_miles,
            max_results=self.max_results,
            max_age_months=self.max_age_months,
            bedroom_tolerance=self.bedroom_tolerance,
            min_confidence_score=self.min_confidence_score,
        )

    def to_dict(self) -> dict:
        """Convert config to dictionary. The API key is never included."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "propertydata_api_url": self.propertydata_api_url,
            "propertydata_enabled": self.propertydata_enabled,
            "request_timeout": self.request_timeout,
            "lookup_timeout": self.lookup_timeout,
            "comparables_cache_ttl_hours": self.comparables_cache_ttl_hours,
            "search_radius_miles": self.search_radius_miles,
            "max_results": self.max_results,
            "max_age_months": self.max_age_months,
            "bedroom_tolerance": self.bedroom_tolerance,
            "min_confidence_score": self.min_confidence_score,
        }
