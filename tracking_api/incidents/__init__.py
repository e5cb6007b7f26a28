"""Ciclo de vida de incidencias: almacén, watch, tracker, feed y reportes."""

from .models import (
    Incident,
    IncidentDraft,
    IncidentStatus,
    ReportResult,
    WatchResult,
    WatchState,
)
from .watch import IncidentWatch, ResolutionLedger
from .store import CallbackSubscription, IncidentStore, InMemoryIncidentStore, Subscription
from .tracker import IncidentStateTracker, incident_status_value
from .feed import IncidentFeed, format_summary
from .reporter import IncidentReporter, disconnect_draft, validate_draft

__all__ = [
    "Incident",
    "IncidentDraft",
    "IncidentStatus",
    "ReportResult",
    "WatchResult",
    "WatchState",
    "IncidentWatch",
    "ResolutionLedger",
    "CallbackSubscription",
    "IncidentStore",
    "InMemoryIncidentStore",
    "Subscription",
    "IncidentStateTracker",
    "incident_status_value",
    "IncidentFeed",
    "format_summary",
    "IncidentReporter",
    "disconnect_draft",
    "validate_draft",
]
