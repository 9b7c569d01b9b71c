"""
Report Service Tests
====================
"""

import pytest

from queuewatch.agent.transitions import DetectionThresholds
from queuewatch.analytics import ReportService
from queuewatch.errors import ReportingError
from queuewatch.models.sample import Sample
from queuewatch.signals import classify

from conftest import LOCATION, ms


NOW = ms(2025, 11, 10, 13, 30)


@pytest.fixture
def reports(store, utc):
    return ReportService(
        store,
        store,
        LOCATION,
        utc,
        thresholds=DetectionThresholds(capacity=6, empty=2),
        clock=lambda: NOW / 1000,
    )


def add_samples(store, *pairs):
    for ts, count in pairs:
        store.record_sample(LOCATION, Sample(ts, count), classify(count))


def add_closed_event(store, start, end, turnover, peak=6):
    event_id = store.create_event(LOCATION, start, peak, turnover_count=turnover, estimated_queue_length=turnover)
    store.close_event(event_id, end)
    return event_id


class TestParameterValidation:
    @pytest.mark.parametrize("days", [0, -1, 367, "7", True, 2.5])
    def test_bad_days(self, reports, days):
        with pytest.raises(ReportingError):
            reports.daily_stats(days=days)

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_bad_limit(self, reports, limit):
        with pytest.raises(ReportingError):
            reports.queue_history(limit=limit)

    @pytest.mark.parametrize("date", ["2025-13-01", "yesterday", "10/11/2025"])
    def test_bad_date(self, reports, date):
        with pytest.raises(ReportingError):
            reports.hourly_stats(date)


class TestSampleReports:
    def test_latest_status(self, reports, store):
        assert reports.latest_status().timestamp is None

        add_samples(store, (ms(2025, 11, 10, 13), 3), (ms(2025, 11, 10, 13, 1), 7))
        latest = reports.latest_status()
        assert latest.count == 7
        assert latest.status.value == "VERY_CROWDED"
        assert latest.formatted_time == "2025-11-10 13:01:00"

    def test_hourly_stats_limited_to_date(self, reports, store):
        add_samples(
            store,
            (ms(2025, 11, 9, 23, 59), 9),
            (ms(2025, 11, 10, 9), 2),
            (ms(2025, 11, 10, 9, 30), 4),
            (ms(2025, 11, 10, 12), 6),
        )
        rows = reports.hourly_stats("2025-11-10")
        assert [(r.period, r.avg_count, r.record_count) for r in rows] == [
            ("09", 3.0, 2),
            ("12", 6.0, 1),
        ]

    def test_daily_stats_window(self, reports, store):
        add_samples(store, (ms(2025, 10, 1), 5), (ms(2025, 11, 9, 10), 1), (ms(2025, 11, 10, 10), 3))
        assert [r.period for r in reports.daily_stats(days=7)] == ["2025-11-10", "2025-11-09"]

    def test_status_history(self, reports, store):
        add_samples(store, *[(ms(2025, 11, 10, 10, i), c) for i, c in enumerate([0, 1, 2, 6, 6, 0])])
        history = reports.status_history(limit=2)
        assert [h.status.value for h in history] == ["VACANT", "VERY_CROWDED"]

    def test_record_count(self, reports, store):
        add_samples(store, (ms(2025, 11, 10, 10), 1), (ms(2025, 11, 10, 10, 1), 2))
        assert reports.record_count() == 2


class TestQueueReports:
    def test_weekly_hourly(self, reports, store):
        add_closed_event(store, ms(2025, 11, 10, 12, 45), ms(2025, 11, 10, 14, 10), turnover=3)
        add_closed_event(store, ms(2025, 11, 9, 13, 10), ms(2025, 11, 9, 13, 40), turnover=1)
        store.create_event(LOCATION, ms(2025, 11, 10, 13, 20), 6)  # open, excluded

        rows = {r.bucket_key: r for r in reports.weekly_hourly()}
        assert set(rows) == {"12", "13", "14"}
        assert rows["13"].event_count == 2
        assert rows["13"].avg_turnover == 2.0

    def test_queue_history_newest_first(self, reports, store):
        add_closed_event(store, ms(2025, 11, 9, 10), ms(2025, 11, 9, 10, 20), turnover=2)
        add_closed_event(store, ms(2025, 11, 10, 10), ms(2025, 11, 10, 10, 45), turnover=5)

        history = reports.queue_history()
        assert [h.turnover_count for h in history] == [5, 2]
        assert history[0].duration_minutes == 45
        assert history[0].start_formatted == "2025-11-10 10:00:00"

    def test_queue_daily(self, reports, store):
        add_closed_event(store, ms(2025, 11, 10, 10), ms(2025, 11, 10, 10, 20), turnover=2)
        add_closed_event(store, ms(2025, 11, 10, 12), ms(2025, 11, 10, 12, 20), turnover=4)
        (day,) = reports.queue_daily()
        assert day.queue_count == 2
        assert day.avg_turnover == 3.0

    def test_queue_stacks(self, reports, store):
        add_closed_event(store, ms(2025, 11, 10, 12, 45), ms(2025, 11, 10, 13, 5), turnover=4)
        cells = reports.queue_stacks()
        assert [(c.date, c.slot) for c in cells] == [
            ("2025-11-10", "12:40"),
            ("2025-11-10", "12:50"),
            ("2025-11-10", "13:00"),
        ]


class TestCurrentQueue:
    def test_no_samples(self, reports):
        assert not reports.current_queue().has_queue

    def test_drained_reading_hides_open_event(self, reports, store):
        store.create_event(LOCATION, ms(2025, 11, 10, 13), 6)
        add_samples(store, (ms(2025, 11, 10, 13, 20), 2))
        assert not reports.current_queue().has_queue

    def test_open_event_reported(self, reports, store):
        event_id = store.create_event(LOCATION, ms(2025, 11, 10, 13), 6)
        add_samples(store, (ms(2025, 11, 10, 13, 20), 6))
        current = reports.current_queue()
        assert current.has_queue
        assert current.event.id == event_id


class TestDashboard:
    def test_empty_store(self, reports):
        snapshot = reports.dashboard()
        assert snapshot.current.count == 0
        assert snapshot.comparison.percentage == 0
        assert snapshot.comparison.trend == "stable"
        assert not snapshot.prediction.has_queue

    def test_busy_hour_with_open_queue(self, reports, store):
        add_samples(
            store,
            (ms(2025, 11, 10, 13, 0), 1),
            (ms(2025, 11, 10, 13, 10), 1),
            (ms(2025, 11, 10, 13, 20), 1),
            (ms(2025, 11, 10, 13, 29), 8),
        )
        event_id = store.create_event(LOCATION, ms(2025, 11, 10, 13, 15), 8)
        store.update_event(event_id, turnover_count=3, peak_count=8, estimated_queue_length=3)

        snapshot = reports.dashboard()

        assert snapshot.current.count == 8
        assert snapshot.average.max_count == 8
        # 8 / 2.75 is 290 %, capped
        assert snapshot.comparison.percentage == 200
        assert snapshot.comparison.trend == "rising"
        assert snapshot.comparison.trend_icon == "↑"
        assert snapshot.queue.processed == 2
        assert snapshot.queue.remaining == 3
        assert snapshot.queue.total == 5
        # No closed history for this hour: 2 minutes per person
        assert snapshot.prediction.estimated_minutes == 6
        assert snapshot.prediction.has_queue

    def test_prediction_uses_hour_history(self, reports, store):
        add_closed_event(store, ms(2025, 11, 9, 13, 0), ms(2025, 11, 9, 13, 30), turnover=3)
        add_samples(store, (ms(2025, 11, 10, 13, 20), 7), (ms(2025, 11, 10, 13, 25), 6))
        event_id = store.create_event(LOCATION, ms(2025, 11, 10, 13, 15), 7)
        store.update_event(event_id, turnover_count=2, peak_count=7, estimated_queue_length=2)

        snapshot = reports.dashboard()

        # 30 minutes for an estimated 3 waiting: 10 minutes per person
        assert snapshot.average.queue == 3
        assert snapshot.average.duration_minutes == 30
        assert snapshot.prediction.estimated_minutes == 20
        assert snapshot.comparison.trend == "stable"
