"""Tests del historial de alertas (ambas políticas)."""

import pytest

from tracking_api.alerts import AggregatorConfig, AlertAggregator, AlertPolicy, AlertRecord
from tracking_api.errors import CapacityInvariantViolation, ConfigurationError
from tracking_api.notifications import NotificationChannel
from tracking_api.state import Channel


def replace_merge(cap=6, **kwargs) -> AlertAggregator:
    return AlertAggregator(AggregatorConfig(AlertPolicy.REPLACE_MERGE, cap), **kwargs)


def insert_new_only(cap=4, **kwargs) -> AlertAggregator:
    return AlertAggregator(AggregatorConfig(AlertPolicy.INSERT_NEW_ONLY, cap), **kwargs)


# =============================================================================
# REPLACE_MERGE
# =============================================================================

class TestReplaceMerge:

    def test_repeated_alert_moves_to_front(self):
        agg = replace_merge()
        agg.ingest(["A", "B", "C"])
        assert agg.ingest(["B"]) == ("B", "A", "C")

    def test_truncates_oldest_past_cap(self):
        agg = replace_merge(cap=3)
        agg._history = tuple(AlertRecord(m) for m in "ABC")
        agg.ingest(["E"])
        assert agg.current_history() == ("E", "A", "B")

    def test_overfull_history_is_truncated_on_next_ingest(self):
        agg = replace_merge(cap=3)
        agg._history = tuple(AlertRecord(m) for m in "ABCD")
        assert agg.ingest(["E"]) == ("E", "A", "B")

    def test_duplicates_in_batch_collapse(self):
        agg = replace_merge()
        assert agg.ingest(["A", "A", "B"]) == ("A", "B")

    @pytest.mark.parametrize("batch", [[], None])
    def test_empty_batch_is_noop(self, batch):
        agg = replace_merge()
        agg.ingest(["A"])
        before = agg.current_history()
        assert agg.ingest(batch) == before
        assert agg.stats["batches"] == 1

    def test_history_never_exceeds_cap_nor_duplicates(self):
        agg = replace_merge(cap=6)
        for i in range(20):
            agg.ingest([f"alert-{i % 9}", f"alert-{(i * 7) % 9}"])
            history = agg.current_history()
            assert len(history) <= 6
            assert len(set(history)) == len(history)

    def test_history_is_swapped_as_immutable_tuple(self):
        agg = replace_merge()
        first = agg.ingest(["A"])
        agg.ingest(["B"])
        assert first == ("A",)
        assert isinstance(agg.current_history(), tuple)

    def test_does_not_notify(self, sink):
        agg = replace_merge(notifier=sink)
        agg.ingest(["A", "B"])
        assert sink.calls == []

    def test_publishes_to_alerts_channel(self, state):
        writer = state.claim_writer(Channel.ALERTS, "alerts")
        agg = replace_merge(writer=writer)
        agg.ingest(["A"])
        agg.ingest(["B"])
        snap = state.snapshot(Channel.ALERTS)
        assert snap.value == ("B", "A")
        assert snap.version == 2

    def test_empty_batch_does_not_publish(self, state):
        writer = state.claim_writer(Channel.ALERTS, "alerts")
        agg = replace_merge(writer=writer)
        agg.ingest([])
        assert state.version(Channel.ALERTS) == 0


# =============================================================================
# INSERT_NEW_ONLY
# =============================================================================

class TestInsertNewOnly:

    def test_new_alerts_inserted_at_front_in_batch_order(self):
        agg = insert_new_only()
        agg.ingest(["A"])
        assert agg.ingest(["B", "C"]) == ("B", "C", "A")

    def test_known_alert_not_reordered(self):
        agg = insert_new_only()
        agg.ingest(["A", "B"])
        assert agg.ingest(["B"]) == ("A", "B")

    def test_each_new_alert_notified_exactly_once(self, sink):
        agg = insert_new_only(notifier=sink)
        agg.ingest(["A", "B"])
        agg.ingest(["B", "C"])
        agg.ingest(["A", "C"])
        notified = [body for _, _, body, _ in sink.of(NotificationChannel.LOCAL)]
        assert notified == ["A", "B", "C"]

    def test_evicts_tail_past_cap(self):
        agg = insert_new_only(cap=4)
        agg.ingest(["A", "B", "C", "D"])
        assert agg.ingest(["E"]) == ("E", "A", "B", "C")

    def test_unchanged_batch_is_not_republished(self, state):
        writer = state.claim_writer(Channel.ALERTS, "alerts")
        agg = insert_new_only(writer=writer)
        agg.ingest(["A"])
        agg.ingest(["A"])
        snap = state.snapshot(Channel.ALERTS)
        assert snap.value == ("A",)
        assert snap.version == 1


# =============================================================================
# CONFIG E INVARIANTES
# =============================================================================

class TestAggregatorConfig:

    def test_default_caps_per_policy(self):
        assert AggregatorConfig.for_policy("replace_merge").history_cap == 6
        assert AggregatorConfig.for_policy(AlertPolicy.INSERT_NEW_ONLY).history_cap == 4

    def test_from_settings(self, make_settings):
        config = AggregatorConfig.from_settings(
            make_settings(alert_policy="insert_new_only", alert_history_cap=5)
        )
        assert config.policy == AlertPolicy.INSERT_NEW_ONLY
        assert config.history_cap == 5

    def test_cap_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            AggregatorConfig(AlertPolicy.REPLACE_MERGE, 0)

    def test_invariant_violation_is_assertion_error(self):
        agg = replace_merge(cap=2)
        with pytest.raises(AssertionError):
            agg._check_invariants(tuple(AlertRecord(m) for m in "ABC"))
        with pytest.raises(CapacityInvariantViolation):
            agg._check_invariants((AlertRecord("A"), AlertRecord("A")))

    def test_alert_records_compare_by_message(self):
        assert AlertRecord("A") == AlertRecord("A")
        assert len({AlertRecord("A"), AlertRecord("A")}) == 1

    def test_reset_clears_history(self):
        agg = replace_merge()
        agg.ingest(["A"])
        agg.reset()
        assert agg.current_history() == ()
