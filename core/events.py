"""
Pipeline events - append-only audit trail for valuations.

One event is emitted per calculation and per fresh comparables fetch,
carrying a snapshot of the key numbers. Events are write-once; the log
only ever grows.
"""

from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from utils.formatting import format_currency, format_percent

from .models import ValuationResult


EVENT_DEAL_VALIDATED = "deal_validated"
EVENT_DEAL_REJECTED = "deal_rejected"
EVENT_COMPARABLES_FETCHED = "comparables_fetched"

STAGE_VALUATION_COMPLETE = "VALUATION_COMPLETE"
TRIGGER_MANUAL_CALCULATION = "manual_calculation"


@dataclass(frozen=True)
class PipelineEvent:
    """Immutable audit record for one calculation."""
    event_id: str
    event_type: str
    subject_id: Optional[str]
    to_stage: Optional[str]
    details: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "subject_id": self.subject_id,
            "to_stage": self.to_stage,
            "details": copy.deepcopy(self.details),
            "created_at": self.created_at.isoformat(),
        }


def build_pipeline_event(
    result: ValuationResult,
    subject_id: Optional[str] = None,
    trigger: str = TRIGGER_MANUAL_CALCULATION,
) -> PipelineEvent:
    """
    Build the audit event for a valuation result.

    Args:
        result: The completed valuation
        subject_id: Identifier of the subject (lead) being valued
        trigger: What caused the calculation

    Returns:
        PipelineEvent with a snapshot of the key numbers
    """
    if result.validation_passed:
        description = (
            f"BMV calculated: {format_percent(result.bmv_score)} | "
            f"Offer: {format_currency(result.offer_amount, decimals=2)} "
            f"({format_percent(result.offer_percentage)})"
        )
    else:
        description = f"BMV calculation failed validation: {result.validation_notes}"

    return PipelineEvent(
        event_id=str(uuid.uuid4()),
        event_type=EVENT_DEAL_VALIDATED if result.validation_passed else EVENT_DEAL_REJECTED,
        subject_id=subject_id,
        to_stage=STAGE_VALUATION_COMPLETE if result.validation_passed else None,
        details={
            "description": description,
            "bmv_score": result.bmv_score,
            "estimated_market_value": result.market_value,
            "market_value_source": result.market_value_source.value,
            "asking_price": result.asking_price,
            "offer_amount": result.offer_amount,
            "offer_percentage": result.offer_percentage,
            "profit_potential": result.profit_potential,
            "refurb_cost": result.refurb_cost,
            "validation_passed": result.validation_passed,
            "credits_used": result.credits_used,
            "trigger": trigger,
        },
    )


def build_comparables_event(summary) -> PipelineEvent:
    """
    Build the audit event for a fresh comparables fetch.

    Args:
        summary: ComparablesSummary of the stored comps
    """
    return PipelineEvent(
        event_id=str(uuid.uuid4()),
        event_type=EVENT_COMPARABLES_FETCHED,
        subject_id=summary.subject_id,
        to_stage=None,
        details={
            "description": f"Fetched {summary.count} comparable properties",
            "average_price": summary.average_price,
            "price_range": summary.to_dict()["price_range"],
            "search_radius_miles": summary.search_radius_miles,
            "confidence": summary.confidence.value,
            "credits_used": summary.credits_used,
        },
    )


class PipelineEventLog:
    """In-memory append-only event sink."""

    def __init__(self):
        self._events: list[PipelineEvent] = []
        self._lock = threading.Lock()

    def __call__(self, event: PipelineEvent) -> None:
        self.append(event)

    def append(self, event: PipelineEvent) -> None:
        with self._lock:
            self._events.append(event)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> list[PipelineEvent]:
        """Copy of all events, oldest first."""
        with self._lock:
            return list(self._events)

    def for_subject(self, subject_id: str) -> list[PipelineEvent]:
        return [e for e in self.events if e.subject_id == subject_id]
