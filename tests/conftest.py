"""Fixtures compartidas."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, List, Optional

import pytest

from common.config import Settings
from tracking_api.errors import SubscriptionError
from tracking_api.incidents import Incident, IncidentStatus
from tracking_api.state import OwnerDispatcher, SessionStateStore


BASE_SETTINGS = Settings(
    sensor_id="42",
    alert_policy="replace_merge",
    alert_history_cap=6,
    incident_store="memory",
    incident_query_limit=30,
    incident_summary_cap=4,
    submitted_history_cap=4,
    stale_after_seconds=60.0,
    redis_url="redis://localhost:6379/0",
    mqtt_broker_host="localhost",
    mqtt_broker_port=1883,
    mqtt_username=None,
    mqtt_password=None,
    mqtt_topic="breathe/sensors/+/readings",
    backend_url="http://backend.test",
    internal_api_key="secret",
    smtp_host=None,
    smtp_port=587,
    smtp_username=None,
    smtp_password=None,
    smtp_from=None,
    smtp_use_tls=True,
    admin_email="admin@example.com",
    log_level="DEBUG",
)


class RecordingSink:
    """NotificationSink que solo guarda lo recibido."""

    def __init__(self):
        self.calls: List[tuple] = []

    def notify(self, channel, title, body, recipient=None) -> None:
        self.calls.append((channel, title, body, recipient))

    def of(self, channel) -> List[tuple]:
        return [c for c in self.calls if c[0] == channel]


class FakeSubscription:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeDocumentStore:
    """Almacén controlado a mano: el test decide qué llega y cuándo."""

    def __init__(self):
        self.doc_watches: List[dict] = []
        self.query_watches: List[dict] = []
        self.fail_subscribe: Optional[SubscriptionError] = None

    def watch_document(self, incident_id, on_snapshot, on_error):
        if self.fail_subscribe is not None:
            raise self.fail_subscribe
        sub = FakeSubscription()
        self.doc_watches.append({
            "incident_id": incident_id,
            "on_snapshot": on_snapshot,
            "on_error": on_error,
            "subscription": sub,
        })
        return sub

    def watch_incidents(self, sensor_id, limit, on_snapshot, on_error):
        if self.fail_subscribe is not None:
            raise self.fail_subscribe
        sub = FakeSubscription()
        self.query_watches.append({
            "sensor_id": sensor_id,
            "limit": limit,
            "on_snapshot": on_snapshot,
            "on_error": on_error,
            "subscription": sub,
        })
        return sub

    def push(self, status: IncidentStatus, index: int = -1, title: str = "Broken sensor") -> None:
        watch = self.doc_watches[index]
        watch["on_snapshot"](make_incident(watch["incident_id"], status, title=title))


def make_incident(
    incident_id: str,
    status: IncidentStatus = IncidentStatus.PENDING,
    title: str = "Broken sensor",
    sensor_id: str = "42",
    created_at: Optional[datetime] = None,
) -> Incident:
    return Incident(
        id=incident_id,
        sensor_id=sensor_id,
        title=title,
        message="details",
        status=status,
        resolved=status == IncidentStatus.RESOLVED,
        created_at=created_at or datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def settings() -> Settings:
    return BASE_SETTINGS


@pytest.fixture
def make_settings():
    def _make(**overrides: Any) -> Settings:
        return replace(BASE_SETTINGS, **overrides)

    return _make


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def dispatcher() -> OwnerDispatcher:
    return OwnerDispatcher(name="test")


@pytest.fixture
def state() -> SessionStateStore:
    return SessionStateStore()


@pytest.fixture
def fake_store() -> FakeDocumentStore:
    return FakeDocumentStore()
