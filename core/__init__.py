"""
BMV Valuation Engine - Core Business Logic

Pipeline for a single subject property:
1. Comparable sales (cache or metered lookup), filtered and ranked
2. Rent (manual entry or metered lookup)
3. Market value (comparables > manual > estimated)
4. BMV percentage, rental yield and recommended offer
5. Validation verdict, text report and pipeline event

Comparables can also be fetched ahead of time and stored per subject,
so later calculations use them at no cost.
"""

from .models import (
    SubjectProperty,
    Condition,
    UrgencyLevel,
    MarketValueSource,
    RentalDataSource,
    RentalEstimate,
    ValuationResult,
    DealRating,
    FailureReason,
    MissingAskingPriceError,
)

# Comp Engine - comparable selection
from .comp_engine import (
    ComparableSale,
    ComparablesConfig,
    Confidence,
    InvalidConfigurationError,
    ComparableFilter,
    assess_comparables,
    score_comparable,
)

# Calculators
from .valuation import MarketValueEstimator, MarketValueEstimate, calculate_bmv_percent
from .rental import RentalYieldCalculator, RentalMetrics
from .offer import OfferCalculator, OfferCalculation
from .validator import DealValidator, ValidationOutcome
from .report import render_validation_report

# External data contracts
from .sources import (
    DataSourceError,
    ComparableFetch,
    RentalFetch,
    ComparableSalesProvider,
    RentalDataProvider,
    CachedComparablesLoader,
    ComparablesStore,
)

# Orchestration and audit
from .events import PipelineEvent, PipelineEventLog, build_comparables_event, build_pipeline_event
from .engine import ValuationEngine
from .comparables import ComparablesFetcher, ComparablesSummary, enrich_with_rent

__all__ = [
    # Models
    "SubjectProperty",
    "Condition",
    "UrgencyLevel",
    "MarketValueSource",
    "RentalDataSource",
    "RentalEstimate",
    "ValuationResult",
    "DealRating",
    "FailureReason",
    "MissingAskingPriceError",
    # Comp Engine
    "ComparableSale",
    "ComparablesConfig",
    "Confidence",
    "InvalidConfigurationError",
    "ComparableFilter",
    "assess_comparables",
    "score_comparable",
    # Calculators
    "MarketValueEstimator",
    "MarketValueEstimate",
    "calculate_bmv_percent",
    "RentalYieldCalculator",
    "RentalMetrics",
    "OfferCalculator",
    "OfferCalculation",
    "DealValidator",
    "ValidationOutcome",
    "render_validation_report",
    # External data contracts
    "DataSourceError",
    "ComparableFetch",
    "RentalFetch",
    "ComparableSalesProvider",
    "RentalDataProvider",
    "CachedComparablesLoader",
    "ComparablesStore",
    # Orchestration and audit
    "PipelineEvent",
    "PipelineEventLog",
    "build_pipeline_event",
    "build_comparables_event",
    "ValuationEngine",
    "ComparablesFetcher",
    "ComparablesSummary",
    "enrich_with_rent",
]
