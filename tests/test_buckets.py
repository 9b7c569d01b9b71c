"""
Bucket Decomposition Tests
==========================
"""

from datetime import date, datetime, time

import pytest
import pytz

from queuewatch.analytics import decompose_event, decompose_into_buckets
from queuewatch.errors import DecompositionError
from queuewatch.models.buckets import Granularity
from queuewatch.models.queue_event import QueueEvent

from conftest import LOCATION, ms


def make_event(start, end, event_id=1, turnover=3, peak=7, estimate=3):
    return QueueEvent(
        id=event_id,
        location_id=LOCATION,
        start_time=start,
        end_time=end,
        peak_count=peak,
        turnover_count=turnover,
        estimated_queue_length=estimate,
    )


class TestHourOfDay:
    """Hour buckets on a single day."""

    def test_event_across_three_hours(self, utc):
        event = make_event(ms(2025, 11, 10, 12, 45), ms(2025, 11, 10, 14, 10))
        parts = decompose_event(event, Granularity.HOUR_OF_DAY, utc)

        assert [p.slot_start for p in parts] == [time(12), time(13), time(14)]
        assert [p.duration_minutes for p in parts] == [15, 60, 10]
        assert [p.is_event_start_bucket for p in parts] == [True, False, False]
        assert [p.is_event_end_bucket for p in parts] == [False, False, True]
        assert [p.bucket_key for p in parts] == ["12", "13", "14"]
        assert all(p.day == date(2025, 11, 10) for p in parts)

    def test_single_bucket(self, utc):
        event = make_event(ms(2025, 11, 10, 13, 5), ms(2025, 11, 10, 13, 20))
        parts = decompose_event(event, Granularity.HOUR_OF_DAY, utc)

        assert len(parts) == 1
        assert parts[0].duration_minutes == 15
        assert parts[0].is_event_start_bucket and parts[0].is_event_end_bucket

    def test_end_on_boundary_adds_no_empty_bucket(self, utc):
        event = make_event(ms(2025, 11, 10, 13), ms(2025, 11, 10, 14))
        parts = decompose_event(event, Granularity.HOUR_OF_DAY, utc)

        assert len(parts) == 1
        assert parts[0].duration_ms == 3_600_000

    def test_attributes_carried_to_every_part(self, utc):
        event = make_event(ms(2025, 11, 10, 12, 45), ms(2025, 11, 10, 14, 10))
        parts = decompose_event(event, Granularity.HOUR_OF_DAY, utc)
        assert {(p.event_id, p.turnover_count, p.peak_count, p.estimated_queue_length) for p in parts} == {
            (1, 3, 7, 3)
        }


class TestTenMinuteSlots:
    def test_slots_keep_the_day(self, utc):
        event = make_event(ms(2025, 11, 10, 12, 45), ms(2025, 11, 10, 13, 5))
        parts = decompose_event(event, Granularity.TEN_MINUTE_SLOT, utc)

        assert [p.slot_label for p in parts] == ["12:40", "12:50", "13:00"]
        assert [p.duration_minutes for p in parts] == [5, 10, 5]
        assert parts[0].bucket_key == "2025-11-10 12:40"


class TestExactness:
    @pytest.mark.parametrize("granularity", list(Granularity))
    def test_parts_sum_to_duration(self, utc, granularity):
        start = ms(2025, 11, 10, 9, 13) + 4_321
        end = start + 3 * 3_600_000 + 1_234_567
        parts = decompose_event(make_event(start, end), granularity, utc)
        assert sum(p.duration_ms for p in parts) == end - start

    def test_zero_length_event(self, utc):
        start = ms(2025, 11, 10, 13, 7)
        parts = decompose_event(make_event(start, start), Granularity.HOUR_OF_DAY, utc)
        assert len(parts) == 1
        assert parts[0].duration_ms == 0
        assert parts[0].slot_start == time(13)


class TestDayBoundary:
    def test_midnight_split_with_warning(self, utc, caplog):
        event = make_event(ms(2025, 11, 10, 23, 50), ms(2025, 11, 11, 0, 20))
        parts = decompose_event(event, Granularity.HOUR_OF_DAY, utc)

        assert [(p.day, p.slot_start, p.duration_minutes) for p in parts] == [
            (date(2025, 11, 10), time(23), 10),
            (date(2025, 11, 11), time(0), 20),
        ]
        assert "spans midnight" in caplog.text

    def test_local_time_zone_defines_the_day(self):
        tokyo = pytz.timezone("Asia/Tokyo")
        # 03:45-05:10 UTC is 12:45-14:10 in Tokyo
        event = make_event(ms(2025, 11, 10, 3, 45), ms(2025, 11, 10, 5, 10))
        parts = decompose_event(event, Granularity.HOUR_OF_DAY, tokyo)

        assert [p.bucket_key for p in parts] == ["12", "13", "14"]
        assert [p.duration_minutes for p in parts] == [15, 60, 10]

    def test_dst_day_still_sums(self):
        berlin = pytz.timezone("Europe/Berlin")
        start = int(berlin.localize(datetime(2025, 10, 26, 1, 30)).timestamp() * 1000)
        end = start + 3 * 3_600_000
        parts = decompose_event(make_event(start, end), Granularity.HOUR_OF_DAY, berlin)
        assert sum(p.duration_ms for p in parts) == end - start


class TestRejections:
    def test_inverted_interval(self, utc):
        event = make_event(ms(2025, 11, 10, 14), ms(2025, 11, 10, 13))
        with pytest.raises(DecompositionError):
            decompose_event(event, Granularity.HOUR_OF_DAY, utc)

    def test_open_event_rejected_alone(self, utc):
        with pytest.raises(DecompositionError):
            decompose_event(make_event(ms(2025, 11, 10, 13), None), Granularity.HOUR_OF_DAY, utc)

    def test_open_events_skipped_in_batch(self, utc):
        events = [
            make_event(ms(2025, 11, 10, 13), ms(2025, 11, 10, 13, 30), event_id=1),
            make_event(ms(2025, 11, 10, 15), None, event_id=2),
        ]
        parts = decompose_into_buckets(events, Granularity.HOUR_OF_DAY, utc)
        assert {p.event_id for p in parts} == {1}
