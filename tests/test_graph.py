"""
Queue Monitor Graph Tests
=========================

The LangGraph driver: store effects, sample logging, status hook and
store-failure semantics.
"""

import pytest

from queuewatch.agent import MonitorRegistry, QueueMonitorGraph, rebuild_events
from queuewatch.errors import StoreError
from queuewatch.models.reason_codes import ReasonCode
from queuewatch.models.sample import StatusLabel

from conftest import LOCATION, STEP_MS, T0, feed


class FlakyStore:
    """Delegates to a real store but fails the next N writes of one kind."""

    def __init__(self, inner):
        self.inner = inner
        self.fail_updates = 0
        self.fail_closes = 0
        self.fail_samples = 0

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def update_event(self, *args, **kwargs):
        if self.fail_updates:
            self.fail_updates -= 1
            raise StoreError("disk full")
        return self.inner.update_event(*args, **kwargs)

    def close_event(self, *args, **kwargs):
        if self.fail_closes:
            self.fail_closes -= 1
            raise StoreError("disk I/O error")
        return self.inner.close_event(*args, **kwargs)

    def record_sample(self, *args, **kwargs):
        if self.fail_samples:
            self.fail_samples -= 1
            raise StoreError("database is locked")
        return self.inner.record_sample(*args, **kwargs)


class TestPersistence:
    """Effects reach the store before the next sample."""

    def test_reference_sequence_stored(self, monitor, store):
        feed(monitor, [5, 6, 6, 5, 6, 3])

        events = store.list_closed_events(LOCATION)
        assert len(events) == 1
        event = events[0]
        assert event.start_time == T0 + STEP_MS
        assert event.end_time == T0 + 5 * STEP_MS
        assert event.turnover_count == 2
        assert event.refill_count == 1
        assert event.peak_count == 6
        assert store.get_active_event(LOCATION) is None

    def test_open_event_visible_while_monitoring(self, monitor, store):
        feed(monitor, [6, 5, 6, 7])

        active = store.get_active_event(LOCATION)
        assert active is not None
        assert active.id == monitor.state.active_event_id
        assert active.turnover_count == 2
        assert active.peak_count == 7
        assert active.is_open

    def test_every_accepted_sample_logged(self, monitor, store):
        feed(monitor, [0, 3, 6, 6, 2])
        monitor.ingest(T0, 4)  # out of order, dropped

        assert store.count_samples(LOCATION) == 5
        latest = store.latest_sample(LOCATION)
        assert latest.count == 2
        assert latest.status == StatusLabel.SLIGHTLY_BUSY

    def test_malformed_input_leaves_state_untouched(self, monitor):
        feed(monitor, [6])
        before = monitor.state
        assert monitor.ingest(T0 + STEP_MS, "lots") is None
        assert monitor.ingest(T0 + STEP_MS, -1) is None
        assert monitor.state == before


class TestStoreFailure:
    """A failed write propagates and the detector state does not advance."""

    def test_failed_turnover_update_keeps_previous_state(self, store, thresholds):
        flaky = FlakyStore(store)
        monitor = QueueMonitorGraph(LOCATION, flaky, thresholds=thresholds, sample_log=flaky)
        feed(monitor, [6, 5])
        before = monitor.state

        flaky.fail_updates = 1
        with pytest.raises(StoreError):
            monitor.ingest(T0 + 2 * STEP_MS, 6)

        assert monitor.state == before
        assert monitor.get_metrics()["failed_samples"] == 1
        assert store.get_active_event(LOCATION).turnover_count == 1

        # The next full sample is still a rising edge and is applied
        result = monitor.ingest(T0 + 3 * STEP_MS, 6)
        assert result.reason_code == ReasonCode.TURNOVER_DETECTED
        assert store.get_active_event(LOCATION).turnover_count == 2

    def test_failed_sample_log_write_blocks_open(self, store, thresholds):
        flaky = FlakyStore(store)
        monitor = QueueMonitorGraph(LOCATION, flaky, thresholds=thresholds, sample_log=flaky)

        flaky.fail_samples = 1
        with pytest.raises(StoreError):
            monitor.ingest(T0, 6)

        assert not monitor.is_active
        assert store.list_open_events(LOCATION) == []

    def test_failed_close_does_not_log_the_sample(self, store, thresholds):
        flaky = FlakyStore(store)
        monitor = QueueMonitorGraph(LOCATION, flaky, thresholds=thresholds, sample_log=flaky)
        feed(monitor, [6, 5])

        flaky.fail_closes = 1
        with pytest.raises(StoreError):
            monitor.ingest(T0 + 2 * STEP_MS, 2)

        assert store.count_samples(LOCATION) == 2
        assert monitor.is_active

    def test_sample_log_replays_to_the_live_events(self, store, thresholds):
        flaky = FlakyStore(store)
        monitor = QueueMonitorGraph(LOCATION, flaky, thresholds=thresholds, sample_log=flaky)
        feed(monitor, [6, 5])
        flaky.fail_closes = 1
        with pytest.raises(StoreError):
            monitor.ingest(T0 + 2 * STEP_MS, 2)
        feed(monitor, [4, 6, 1], start=T0 + 3 * STEP_MS)

        def summary():
            return [
                (e.start_time, e.end_time, e.turnover_count, e.peak_count)
                for e in store.list_closed_events(LOCATION)
            ]

        live = summary()
        assert live == [(T0, T0 + 5 * STEP_MS, 2, 6)]

        report = rebuild_events(store, store, LOCATION, thresholds)
        assert report.samples_replayed == 5
        assert summary() == live


class TestVanishedEvent:
    """The open event is deleted behind the monitor's back."""

    def test_drain_returns_to_idle(self, monitor, store):
        feed(monitor, [6])
        store.delete_events(LOCATION)

        results = feed(monitor, [1, 0, 6, 0, 7, 1], start=T0 + STEP_MS)

        assert results[0].reason_code == ReasonCode.EVENT_MISSING
        assert results[2].reason_code == ReasonCode.QUEUE_STARTED
        assert not monitor.is_active
        assert len(store.list_closed_events(LOCATION)) == 2
        assert store.count_samples(LOCATION) == 7

    def test_turnover_returns_to_idle(self, monitor, store):
        feed(monitor, [6, 5])
        store.delete_events(LOCATION)

        result = monitor.ingest(T0 + 2 * STEP_MS, 6)
        assert result.reason_code == ReasonCode.EVENT_MISSING
        assert not monitor.is_active
        assert monitor.state.active_event_id is None
        assert monitor.state.samples_processed == 3

        result = monitor.ingest(T0 + 3 * STEP_MS, 7)
        assert result.reason_code == ReasonCode.QUEUE_STARTED
        assert store.get_active_event(LOCATION).peak_count == 7

    def test_status_hook_still_called(self, store, thresholds):
        calls = []
        monitor = QueueMonitorGraph(
            LOCATION,
            store,
            thresholds=thresholds,
            on_status_change=lambda loc, status, sample: calls.append(status),
        )
        feed(monitor, [6])
        store.delete_events(LOCATION)
        feed(monitor, [2], start=T0 + STEP_MS)

        assert calls == [StatusLabel.VERY_CROWDED, StatusLabel.SLIGHTLY_BUSY]


class TestStatusHook:
    def test_called_on_label_change_only(self, store, thresholds):
        calls = []
        monitor = QueueMonitorGraph(
            LOCATION,
            store,
            thresholds=thresholds,
            on_status_change=lambda loc, status, sample: calls.append((loc, status, sample.count)),
        )
        feed(monitor, [0, 0, 3, 4, 6, 2])

        assert calls == [
            (LOCATION, StatusLabel.VACANT, 0),
            (LOCATION, StatusLabel.SLIGHTLY_BUSY, 3),
            (LOCATION, StatusLabel.VERY_CROWDED, 6),
            (LOCATION, StatusLabel.SLIGHTLY_BUSY, 2),
        ]

    def test_hook_failure_does_not_stop_detection(self, store, thresholds):
        def broken(*args):
            raise ConnectionError("subscriber gone")

        monitor = QueueMonitorGraph(LOCATION, store, thresholds=thresholds, on_status_change=broken)
        feed(monitor, [6, 2])
        assert len(store.list_closed_events(LOCATION)) == 1


class TestMonitorLifecycle:
    def test_metrics(self, monitor):
        feed(monitor, [6, 5, 6])
        monitor.ingest(T0, 1)

        metrics = monitor.get_metrics()
        assert metrics["phase"] == "MONITORING"
        assert metrics["turnover_count"] == 2
        assert metrics["samples_processed"] == 3
        assert metrics["rejected_out_of_order"] == 1

    def test_reset(self, monitor):
        feed(monitor, [6])
        monitor.reset()
        assert not monitor.is_active
        assert monitor.validator.last_timestamp is None


class TestMonitorRegistry:
    def test_one_monitor_per_location(self, store, thresholds):
        registry = MonitorRegistry(
            lambda loc: QueueMonitorGraph(loc, store, thresholds=thresholds, sample_log=store)
        )
        front = registry.get("front")
        back = registry.get("back")

        assert registry.get("front") is front
        assert front is not back
        assert len(registry) == 2
        assert "front" in registry

    def test_locations_do_not_share_state(self, store, thresholds):
        registry = MonitorRegistry(
            lambda loc: QueueMonitorGraph(loc, store, thresholds=thresholds, sample_log=store)
        )
        feed(registry.get("front"), [6, 5, 6])
        feed(registry.get("back"), [1, 2])

        assert registry.get("front").is_active
        assert not registry.get("back").is_active
        assert store.get_active_event("back") is None
        assert store.get_active_event("front").turnover_count == 2
