"""
FastAPI application for the valuation engine.

JSON API over ValuationEngine. Production deployment configuration via
environment variables (see utils.config).
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from core import (
    ComparablesConfig,
    ComparablesFetcher,
    Condition,
    DataSourceError,
    InvalidConfigurationError,
    MissingAskingPriceError,
    PipelineEventLog,
    SubjectProperty,
    UrgencyLevel,
    ValuationEngine,
)
from propertydata import CachingPropertyDataClient, InMemoryComparablesStore, PropertyDataClient
from utils.config import Config


logger = logging.getLogger(__name__)


# =============================================================================
# API Request Models
# =============================================================================

class SubjectPropertyInput(BaseModel):
    """Subject property submitted for valuation."""
    asking_price: Optional[float] = Field(default=None, ge=0)
    postcode: Optional[str] = None
    address: str = ""
    bedrooms: Optional[int] = Field(default=None, ge=0)
    property_type: Optional[str] = None
    square_feet: Optional[int] = Field(default=None, ge=0)
    condition: Optional[Condition] = None
    urgency_level: Optional[UrgencyLevel] = None
    motivation_score: Optional[float] = Field(default=None, ge=0, le=10)
    estimated_refurb_cost: Optional[float] = Field(default=None, ge=0)
    manual_market_value: Optional[float] = Field(default=None, ge=0)
    manual_monthly_rent: Optional[float] = Field(default=None, ge=0)
    manual_annual_rent: Optional[float] = Field(default=None, ge=0)
    local_average_rent: Optional[float] = Field(default=None, ge=0)
    subject_id: Optional[str] = None

    def to_subject(self) -> SubjectProperty:
        return SubjectProperty(
            asking_price=self.asking_price,
            postcode=self.postcode,
            address=self.address,
            bedrooms=self.bedrooms,
            property_type=self.property_type,
            square_feet=self.square_feet,
            condition=self.condition,
            urgency_level=self.urgency_level,
            motivation_score=self.motivation_score,
            estimated_refurb_cost=self.estimated_refurb_cost,
            manual_market_value=self.manual_market_value,
            manual_monthly_rent=self.manual_monthly_rent,
            manual_annual_rent=self.manual_annual_rent,
            local_average_rent=self.local_average_rent,
            subject_id=self.subject_id,
        )


class FetchComparablesInput(BaseModel):
    """Subject details needed to fetch and store comparables."""
    postcode: Optional[str] = None
    bedrooms: Optional[int] = Field(default=None, ge=0)
    property_type: Optional[str] = None
    force_refresh: bool = False


class ComparablesConfigInput(BaseModel):
    """Comparable search configuration update."""
    search_radius_miles: float = 3.0
    max_results: int = 5
    max_age_months: int = 12
    bedroom_tolerance: int = 1
    min_confidence_score: float = 0.7


def create_app(
    config: Optional[Config] = None,
    comparables_provider=None,
    rental_provider=None,
    comparables_loader=None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application config (default: loaded from environment)
        comparables_provider: Overrides the PropertyData sold-prices lookup
        rental_provider: Overrides the PropertyData rents lookup
        comparables_loader: ComparablesStore replacing the in-memory store

    When no providers are given and a PropertyData API key is configured,
    a cached PropertyData client serves both lookups.
    """
    config = config or Config.load()

    app = FastAPI(
        title="BMV Valuation Engine",
        description="Valuation and deal scoring for property investment leads",
        version="0.1.0",
        debug=config.debug,
    )

    # Healthcheck endpoints: synchronous, no IO
    @app.get("/", include_in_schema=False)
    def root():
        """Root healthcheck. No dependencies, no IO."""
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        """Secondary health endpoint. No dependencies, no IO."""
        return {"status": "healthy"}

    if comparables_provider is None and rental_provider is None and config.propertydata_enabled:
        cached_client = CachingPropertyDataClient(
            PropertyDataClient.from_config(config),
            ttl_hours=config.comparables_cache_ttl_hours,
        )
        comparables_provider = rental_provider = cached_client
        logger.info("PropertyData lookups enabled via %s", config.propertydata_api_url)
    elif comparables_provider is None and rental_provider is None:
        logger.warning("PROPERTYDATA_API_KEY not set - comparable and rent lookups disabled")

    state = {
        "comparables_config": config.comparables_config(),
    }
    events = PipelineEventLog()
    loader = comparables_loader or InMemoryComparablesStore()

    app.state.events = events
    app.state.comparables_loader = loader

    def build_engine() -> ValuationEngine:
        return ValuationEngine(
            comparables_provider=comparables_provider,
            rental_provider=rental_provider,
            comparables_loader=loader,
            config=state["comparables_config"],
            event_sink=events,
            lookup_timeout_seconds=config.lookup_timeout,
        )

    @app.post("/api/valuations/calculate")
    def calculate_valuation(subject_input: SubjectPropertyInput):
        """
        Calculate BMV, offer, yield and verdict for a subject property.

        Returns:
            The full valuation payload
        """
        try:
            subject = subject_input.to_subject()
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        try:
            result = build_engine().calculate(subject)
        except MissingAskingPriceError as e:
            raise HTTPException(status_code=400, detail=str(e))

        return {"success": True, "data": result.to_dict()}

    @app.post("/api/subjects/{subject_id}/comparables")
    def fetch_comparables(subject_id: str, fetch_input: FetchComparablesInput):
        """
        Fetch, score and store comparables for a subject.

        Stored comps are reused within the cache TTL unless force_refresh is set,
        and are picked up by later valuations of the same subject_id.
        """
        fetcher = ComparablesFetcher(
            comparables_provider=comparables_provider,
            store=loader,
            rental_provider=rental_provider,
            config=state["comparables_config"],
            event_sink=events,
            refresh_after_hours=config.comparables_cache_ttl_hours,
        )
        try:
            subject = SubjectProperty(
                asking_price=None,
                postcode=fetch_input.postcode,
                bedrooms=fetch_input.bedrooms,
                property_type=fetch_input.property_type,
                subject_id=subject_id,
            )
            summary = fetcher.fetch(subject, force_refresh=fetch_input.force_refresh)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except DataSourceError as e:
            logger.error("Comparables fetch for %s failed: %s", subject_id, e)
            raise HTTPException(status_code=502, detail="Failed to fetch comparables")

        return {"success": True, "data": summary.to_dict()}

    @app.get("/api/comparables/config")
    def get_comparables_config():
        """Current comparable search configuration."""
        return {"success": True, "data": state["comparables_config"].to_dict()}

    @app.post("/api/comparables/config")
    def update_comparables_config(config_input: ComparablesConfigInput):
        """Validate and store a new comparable search configuration."""
        try:
            new_config = ComparablesConfig(**config_input.model_dump())
        except InvalidConfigurationError as e:
            raise HTTPException(
                status_code=400,
                detail={"field": e.field, "message": e.message},
            )

        state["comparables_config"] = new_config
        logger.info("Comparables config updated: %s", new_config.to_dict())
        return {
            "success": True,
            "message": "Configuration updated successfully",
            "data": new_config.to_dict(),
        }

    @app.get("/api/pipeline-events")
    def list_pipeline_events(subject_id: Optional[str] = None):
        """Audit events, oldest first, optionally for one subject."""
        selected = events.for_subject(subject_id) if subject_id else events.events
        return {
            "success": True,
            "count": len(selected),
            "data": [e.to_dict() for e in selected],
        }

    return app


# Create app instance
app = create_app()
