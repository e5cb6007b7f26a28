"""Canales observables de la sesión."""

from __future__ import annotations

from enum import Enum

from ..classification.models import MetricKind


class Channel(str, Enum):
    """Canales de la SessionStateStore.

    Cada canal tiene exactamente un productor (evaluador, agregador,
    tracker...) y cualquier número de observadores de UI.
    """

    ALERTS = "alerts"
    CONNECTION_STATUS = "connectionStatus"
    LAST_SEEN = "lastSeen"
    LOCATION = "location"
    INCIDENT_STATUS = "incidentStatus"
    INCIDENT_SUMMARIES = "incidentSummaries"
    SUBMITTED_INCIDENTS = "submittedIncidents"
    EXPOSURE = "exposure"
    OZONE = "ozone"
    CO2 = "co2"
    TEMPERATURE = "temperature"
    BATTERY = "battery"
    SIGNAL = "signal"


CONNECTED = "connected"
DISCONNECTED = "disconnected"

# Lecturas en vivo con canal propio
METRIC_CHANNELS = {
    MetricKind.OZONE: Channel.OZONE,
    MetricKind.CO2: Channel.CO2,
    MetricKind.TEMPERATURE: Channel.TEMPERATURE,
    MetricKind.BATTERY: Channel.BATTERY,
    MetricKind.SIGNAL: Channel.SIGNAL,
}


def channel_for_metric(metric: MetricKind) -> Channel | None:
    return METRIC_CHANNELS.get(metric)
