"""Métricas Prometheus del motor de alertas/incidencias."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

ALERT_BATCHES_INGESTED = Counter(
    "breathe_alert_batches_ingested_total",
    "Non-empty alert batches merged into the history",
    ["policy"],
)
ALERT_HISTORY_SIZE = Gauge(
    "breathe_alert_history_size",
    "Current number of alerts in the session history",
)
NOTIFICATIONS = Counter(
    "breathe_notifications_total",
    "Notifications handed to the sink",
    ["channel", "status"],  # queued, sent, failed, dropped
)
INCIDENT_TRANSITIONS = Counter(
    "breathe_incident_transitions_total",
    "Incident watch transitions",
    ["transition"],
)
SUBSCRIPTION_ERRORS = Counter(
    "breathe_subscription_errors_total",
    "Errors reported by remote subscriptions",
    ["source"],  # tracker, feed
)
DISPATCH_QUEUE_DEPTH = Gauge(
    "breathe_dispatch_queue_depth",
    "Events waiting for the owner thread",
)
READINGS_RECEIVED = Counter(
    "breathe_readings_received_total",
    "Sensor readings applied to the session",
    ["metric"],
)
