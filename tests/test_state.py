"""Tests del SessionStateStore y del OwnerDispatcher."""

import threading

import pytest

from tracking_api.errors import ConfigurationError
from tracking_api.state import Channel, OwnerDispatcher, SessionStateStore


class TestSessionStateStore:

    def test_single_writer_per_channel(self, state):
        state.claim_writer(Channel.ALERTS, "aggregator")
        with pytest.raises(ConfigurationError):
            state.claim_writer(Channel.ALERTS, "someone-else")
        assert state.writer_of(Channel.ALERTS) == "aggregator"

    def test_released_writer_cannot_publish(self, state):
        writer = state.claim_writer(Channel.ALERTS, "aggregator")
        state.release_writer(writer)
        with pytest.raises(ConfigurationError):
            writer.publish(("A",))

    def test_versions_increase_per_channel(self, state):
        alerts = state.claim_writer(Channel.ALERTS, "a")
        lastseen = state.claim_writer(Channel.LAST_SEEN, "b")
        assert alerts.publish(("A",)).version == 1
        assert alerts.publish(("B",)).version == 2
        assert lastseen.publish("2026-01-01T00:00:00").version == 1

    def test_observers_see_versions_in_order(self, state):
        writer = state.claim_writer(Channel.ALERTS, "a")
        seen_a, seen_b = [], []
        state.observe(Channel.ALERTS, lambda s: seen_a.append(s.version))
        state.observe(Channel.ALERTS, lambda s: seen_b.append(s.version))
        for i in range(5):
            writer.publish((str(i),))
        assert seen_a == seen_b == [1, 2, 3, 4, 5]

    def test_concurrent_publishers_keep_order_consistent(self, state):
        writer = state.claim_writer(Channel.ALERTS, "a")
        seen_a, seen_b = [], []
        state.observe(Channel.ALERTS, lambda s: seen_a.append(s.version))
        state.observe(Channel.ALERTS, lambda s: seen_b.append(s.version))

        threads = [
            threading.Thread(target=lambda: [writer.publish(("x",)) for _ in range(50)])
            for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert seen_a == seen_b == list(range(1, 201))

    def test_observe_replays_current_value(self, state):
        writer = state.claim_writer(Channel.CONNECTION_STATUS, "sensor")
        writer.publish("connected")
        seen = []
        state.observe(Channel.CONNECTION_STATUS, lambda s: seen.append(s.value))
        assert seen == ["connected"]

    def test_cancelled_observation_stops_delivery(self, state):
        writer = state.claim_writer(Channel.ALERTS, "a")
        seen = []
        obs = state.observe(Channel.ALERTS, lambda s: seen.append(s.value))
        writer.publish(("A",))
        obs.cancel()
        writer.publish(("B",))
        assert seen == [("A",)]
        assert obs.active is False

    def test_failing_observer_does_not_block_others(self, state):
        writer = state.claim_writer(Channel.ALERTS, "a")
        seen = []

        def boom(_):
            raise RuntimeError("render failed")

        state.observe(Channel.ALERTS, boom)
        state.observe(Channel.ALERTS, lambda s: seen.append(s.value))
        writer.publish(("A",))
        assert seen == [("A",)]

    def test_reset_clears_and_notifies_none(self, state):
        writer = state.claim_writer(Channel.ALERTS, "a")
        writer.publish(("A",))
        seen = []
        state.observe(Channel.ALERTS, lambda s: seen.append(s.value), replay=False)
        state.reset()
        assert seen == [None]
        assert state.get(Channel.ALERTS) is None
        assert state.snapshot_all() == {}

    def test_snapshot_all_uses_channel_names(self, state):
        state.claim_writer(Channel.LAST_SEEN, "s").publish("t")
        assert state.snapshot_all() == {"lastSeen": "t"}


class TestOwnerDispatcher:

    def test_run_pending_is_fifo(self, dispatcher):
        out = []
        for i in range(5):
            dispatcher.post(out.append, i)
        assert dispatcher.run_pending() == 5
        assert out == [0, 1, 2, 3, 4]

    def test_run_pending_respects_max_items(self, dispatcher):
        out = []
        for i in range(3):
            dispatcher.post(out.append, i)
        dispatcher.run_pending(max_items=2)
        assert out == [0, 1]
        assert dispatcher.pending == 1

    def test_failing_event_does_not_stop_queue(self, dispatcher):
        out = []

        def boom():
            raise ValueError("bad event")

        dispatcher.post(boom)
        dispatcher.post(out.append, "after")
        dispatcher.run_pending()
        assert out == ["after"]
        assert dispatcher.metrics["errors"] == 1

    def test_bounded_queue_drops_when_full(self):
        dispatcher = OwnerDispatcher(max_queue_size=1)
        assert dispatcher.post(print, "a") is True
        assert dispatcher.post(print, "b") is False
        assert dispatcher.metrics["dropped"] == 1

    def test_dedicated_thread_runs_events_in_order(self):
        dispatcher = OwnerDispatcher(name="bg")
        out = []
        owner_flags = []
        dispatcher.start()
        try:
            for i in range(20):
                dispatcher.post(out.append, i)
            dispatcher.post(lambda: owner_flags.append(dispatcher.is_owner_thread()))
        finally:
            dispatcher.stop(drain=True)
        assert out == list(range(20))
        assert owner_flags == [True]

    def test_run_pending_rejected_while_thread_running(self):
        dispatcher = OwnerDispatcher(name="bg")
        dispatcher.start()
        try:
            with pytest.raises(RuntimeError):
                dispatcher.run_pending()
        finally:
            dispatcher.stop()
