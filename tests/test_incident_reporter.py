"""Tests del flujo de reporte de incidencias."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from tracking_api.errors import IncidentValidationError, SubscriptionError
from tracking_api.incidents import (
    IncidentDraft,
    IncidentReporter,
    IncidentStateTracker,
    IncidentStatus,
    InMemoryIncidentStore,
    WatchState,
    disconnect_draft,
)
from tracking_api.notifications import NotificationChannel
from tracking_api.state import Channel


@pytest.fixture
def store():
    return InMemoryIncidentStore()


@pytest.fixture
def tracker(store, dispatcher):
    return IncidentStateTracker(store, dispatcher)


@pytest.fixture
def reporter(store, tracker, state, sink):
    return IncidentReporter(
        store,
        tracker=tracker,
        submitted_writer=state.claim_writer(Channel.SUBMITTED_INCIDENTS, "reporter"),
        notifier=sink,
        admin_email="admin@example.com",
    )


def draft(title="Broken sensor", message="No readings since noon"):
    return IncidentDraft(sensor_id="42", title=title, message=message, location="Lab 2")


class TestDisconnectDraft:

    def test_prefilled_title_and_message(self):
        last_seen = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)
        d = disconnect_draft("42", "Lab 2", last_seen)
        assert d.title == "WARNING: Sensor 42 disconnected"
        assert "Lab 2" in d.message
        assert "14/03/2026 09:30" in d.message
        assert d.location == "Lab 2"

    def test_unknown_location_and_time(self):
        d = disconnect_draft("42")
        assert "unknown location" in d.message
        assert "unknown" in d.message


class TestIncidentReporter:

    @pytest.mark.parametrize("title, message", [("", "x"), ("x", ""), ("   ", "x")])
    def test_rejects_empty_fields(self, reporter, sink, title, message):
        with pytest.raises(IncidentValidationError):
            reporter.submit(draft(title, message))
        assert sink.calls == []

    def test_submit_creates_pending_incident(self, reporter, store):
        result = reporter.submit(draft())
        assert result.ok
        stored = store.get_incident(result.incident.id)
        assert stored.status == IncidentStatus.PENDING
        assert stored.resolved is False
        assert stored.location == "Lab 2"

    def test_submit_emails_admin(self, reporter, sink):
        reporter.submit(draft())
        channel, title, body, recipient = sink.calls[0]
        assert channel == NotificationChannel.EMAIL
        assert title == "New incident: Broken sensor"
        assert "No readings since noon" in body
        assert recipient == "admin@example.com"

    def test_submit_starts_tracker_watch(self, reporter, tracker):
        result = reporter.submit(draft())
        assert tracker.state == WatchState.WATCHING
        assert tracker.incident_id == result.incident.id

    def test_submitted_history_capped_newest_first(self, reporter, state):
        for i in range(6):
            reporter.submit(draft(title=f"Report {i}"))
        submitted = state.get(Channel.SUBMITTED_INCIDENTS)
        assert len(submitted) == 4
        assert submitted[0].endswith(" - Report 5")
        assert submitted[-1].endswith(" - Report 2")

    def test_store_failure_returns_error_result(self, sink, state):
        store = MagicMock()
        store.create_incident.side_effect = SubscriptionError("offline")
        reporter = IncidentReporter(
            store,
            submitted_writer=state.claim_writer(Channel.SUBMITTED_INCIDENTS, "reporter"),
            notifier=sink,
        )
        result = reporter.submit(draft())
        assert result.ok is False
        assert isinstance(result.error, SubscriptionError)
        assert state.get(Channel.SUBMITTED_INCIDENTS) is None

    def test_untracked_incident_is_reported_as_warning(self, store, sink):
        tracker = MagicMock()
        tracker.start_watch.return_value = MagicMock(ok=False, error=SubscriptionError("denied"))
        reporter = IncidentReporter(store, tracker=tracker, notifier=sink)
        result = reporter.submit(draft())
        assert result.ok
        assert result.warnings
