"""
Recovery and Rebuild Tests
==========================
"""

import pytest

from queuewatch.agent import DetectionThresholds, rebuild_events, recover_orphans
from queuewatch.models.sample import Sample, StatusLabel

from conftest import LOCATION, STEP_MS, T0, feed


class TestRecoverOrphans:
    def test_nothing_to_do(self, store):
        report = recover_orphans(store, LOCATION)
        assert report.count == 0

    def test_delete_policy(self, store):
        closed = store.create_event(LOCATION, T0, peak_count=6)
        store.close_event(closed, T0 + 60_000)
        orphan = store.create_event(LOCATION, T0 + 120_000, peak_count=7)

        report = recover_orphans(store, LOCATION, policy="delete")

        assert report.event_ids == [orphan]
        assert store.list_open_events(LOCATION) == []
        assert store.get_event(orphan) is None
        assert store.get_event(closed) is not None

    def test_force_close_at_last_sample(self, store):
        orphan = store.create_event(LOCATION, T0, peak_count=6)
        for i, count in enumerate([6, 5, 6, 6]):
            store.record_sample(LOCATION, Sample(T0 + i * STEP_MS, count), StatusLabel.VERY_CROWDED)

        report = recover_orphans(store, LOCATION, policy="force_close", sample_log=store)

        assert report.policy == "force_close"
        event = store.get_event(orphan)
        assert event.end_time == T0 + 3 * STEP_MS

    def test_force_close_without_samples_uses_start(self, store):
        orphan = store.create_event(LOCATION, T0, peak_count=6)
        recover_orphans(store, LOCATION, policy="force_close")
        assert store.get_event(orphan).end_time == T0

    def test_force_close_multiple_orphans(self, store):
        first = store.create_event(LOCATION, T0, peak_count=6)
        second = store.create_event(LOCATION, T0 + 100_000, peak_count=6)
        for ts in (T0, T0 + 50_000, T0 + 100_000, T0 + 150_000):
            store.record_sample(LOCATION, Sample(ts, 6), StatusLabel.VERY_CROWDED)

        recover_orphans(store, LOCATION, policy="force_close", sample_log=store)

        assert store.get_event(first).end_time == T0 + 50_000
        assert store.get_event(second).end_time == T0 + 150_000

    def test_unknown_policy(self, store):
        with pytest.raises(ValueError):
            recover_orphans(store, LOCATION, policy="resume")


class TestRebuildEvents:
    def test_regenerates_same_events(self, monitor, store, thresholds):
        feed(monitor, [0, 6, 6, 5, 6, 2, 0, 6, 1])
        original = [(e.start_time, e.end_time, e.turnover_count) for e in store.list_closed_events(LOCATION)]

        report = rebuild_events(store, store, LOCATION, thresholds)

        assert report.deleted == 2
        assert report.generated == 2
        assert report.samples_replayed == 9
        rebuilt = [(e.start_time, e.end_time, e.turnover_count) for e in store.list_closed_events(LOCATION)]
        assert rebuilt == original
        # The sample log is not duplicated by the replay
        assert store.count_samples(LOCATION) == 9

    def test_new_thresholds_change_events(self, monitor, store):
        feed(monitor, [6, 5, 6, 4, 6, 3])
        assert len(store.list_closed_events(LOCATION)) == 1

        report = rebuild_events(store, store, LOCATION, DetectionThresholds(capacity=6, empty=4))

        assert report.generated == 2
        assert [e.turnover_count for e in store.list_closed_events(LOCATION)] == [2, 1]

    def test_trailing_open_episode_discarded(self, monitor, store, thresholds):
        feed(monitor, [6, 2, 6, 6])
        assert store.get_active_event(LOCATION) is not None

        report = rebuild_events(store, store, LOCATION, thresholds)

        assert report.discarded_open_event
        assert report.generated == 1
        assert store.list_open_events(LOCATION) == []
