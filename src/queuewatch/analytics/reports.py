"""
Report Service
==============

Read-only queries behind the HTTP API.

Every query reads the store, then hands the rows to the pure functions in
``buckets.py`` and ``aggregation.py``. Nothing here writes.

Parameter checks:
    days   1..366
    limit  1..1000
    date   YYYY-MM-DD
Invalid values raise ReportingError; they never produce an empty result.

Waiting figures are estimates derived from turnover counting, not head
counts.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

import numpy as np
from pytz import BaseTzInfo

from queuewatch.agent.transitions import DetectionThresholds
from queuewatch.analytics.aggregation import (
    aggregate_by_bucket,
    heatmap_cells,
    queue_stats_by_day,
    sample_stats_by_day,
    sample_stats_by_hour,
    status_changes,
)
from queuewatch.analytics.buckets import decompose_into_buckets
from queuewatch.analytics.timezone import format_local, local_to_ms, to_local
from queuewatch.config import ReportingConfig
from queuewatch.errors import ReportingError
from queuewatch.models.buckets import BucketSummary, Granularity, HeatmapCell
from queuewatch.models.output import (
    Comparison,
    CurrentQueue,
    CurrentReading,
    DashboardSnapshot,
    HourAverage,
    Prediction,
    QueueDayStats,
    QueueHistoryEntry,
    QueueProgress,
    SampleStats,
    StatusChange,
)
from queuewatch.store.base import EventStore, SampleLog


logger = logging.getLogger(__name__)

DAY_MS = 86_400_000
MAX_DAYS = 366
MAX_LIMIT = 1000

_TREND_ICONS = {"rising": "↑", "falling": "↓", "stable": "→"}


class ReportService:
    """
    Reporting queries for one location.

    Example:
        reports = ReportService(store, store, "front", resolve_pytz("Asia/Tokyo"))
        for row in reports.weekly_hourly(days=7):
            print(row.bucket_key, row.avg_turnover)
    """

    def __init__(
        self,
        events: EventStore,
        samples: SampleLog,
        location_id: str,
        tz: BaseTzInfo,
        thresholds: Optional[DetectionThresholds] = None,
        config: Optional[ReportingConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the report service.

        Args:
            events: Event store to read queue events from
            samples: Sample log to read occupancy samples from
            location_id: Location the reports are scoped to
            tz: Time zone defining local days and hours
            thresholds: Detection thresholds (EMPTY decides "no queue")
            config: Reporting defaults
            clock: Returns the current time in seconds (injectable for tests)
        """
        self.events = events
        self.samples = samples
        self.location_id = location_id
        self.tz = tz
        self.thresholds = thresholds or DetectionThresholds()
        self.config = config or ReportingConfig()
        self._clock = clock

    # -------------------------------------------------------------------------
    # Parameter handling
    # -------------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _days(self, days: Any) -> int:
        if days is None:
            return self.config.default_days
        if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= MAX_DAYS:
            raise ReportingError(f"days must be an integer in 1..{MAX_DAYS}, got {days!r}")
        return days

    def _limit(self, limit: Any, default: int) -> int:
        if limit is None:
            return default
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LIMIT:
            raise ReportingError(f"limit must be an integer in 1..{MAX_LIMIT}, got {limit!r}")
        return limit

    def _since(self, days: Any) -> int:
        return self._now_ms() - self._days(days) * DAY_MS

    def _closed_events(self, days: Any):
        return self.events.list_closed_events(self.location_id, since=self._since(days))

    # -------------------------------------------------------------------------
    # Raw samples
    # -------------------------------------------------------------------------

    def latest_status(self) -> CurrentReading:
        """Most recent sample, or an empty reading if none was recorded."""
        latest = self.samples.latest_sample(self.location_id)
        if latest is None:
            return CurrentReading()
        return CurrentReading(
            count=latest.count,
            status=latest.status,
            timestamp=latest.timestamp,
            formatted_time=format_local(latest.timestamp, self.tz),
        )

    def status_history(self, limit: Optional[int] = None, days: Optional[int] = None) -> List[StatusChange]:
        """Label changes over the window, newest first."""
        limit = self._limit(limit, self.config.status_history_limit)
        records = self.samples.list_samples(self.location_id, since=self._since(days))
        return status_changes(records, self.tz)[:limit]

    def daily_stats(self, days: Optional[int] = None) -> List[SampleStats]:
        """Occupancy statistics per local date, newest first."""
        records = self.samples.list_samples(self.location_id, since=self._since(days))
        return sample_stats_by_day(records, self.tz)

    def hourly_stats(self, date: str) -> List[SampleStats]:
        """
        Occupancy statistics per hour for one local date.

        Raises:
            ReportingError: If ``date`` is not ``YYYY-MM-DD``.
        """
        try:
            day = datetime.strptime(date, "%Y-%m-%d")
        except (TypeError, ValueError):
            raise ReportingError(f"date must be YYYY-MM-DD, got {date!r}")

        since = local_to_ms(day, self.tz)
        until = local_to_ms(day + timedelta(days=1), self.tz)
        records = self.samples.list_samples(self.location_id, since=since, until=until)
        return sample_stats_by_hour(records, self.tz)

    def record_count(self) -> int:
        return self.samples.count_samples(self.location_id)

    # -------------------------------------------------------------------------
    # Queue events
    # -------------------------------------------------------------------------

    def weekly_hourly(self, days: Optional[int] = None) -> List[BucketSummary]:
        """Hour-of-day queue statistics over closed events in the window."""
        contributions = decompose_into_buckets(
            self._closed_events(days), Granularity.HOUR_OF_DAY, self.tz,
        )
        return aggregate_by_bucket(contributions)

    def queue_daily(self, days: Optional[int] = None) -> List[QueueDayStats]:
        """Queue count and turnover figures per local day, newest first."""
        return queue_stats_by_day(self._closed_events(days), self.tz)

    def queue_history(self, limit: Optional[int] = None) -> List[QueueHistoryEntry]:
        """Closed events, newest first."""
        limit = self._limit(limit, self.config.history_limit)
        events = self.events.list_closed_events(
            self.location_id, limit=limit, newest_first=True,
        )
        return [
            QueueHistoryEntry(
                id=e.id,
                start_time=e.start_time,
                end_time=e.end_time,
                start_formatted=format_local(e.start_time, self.tz),
                end_formatted=format_local(e.end_time, self.tz),
                duration_minutes=round(e.duration_minutes),
                peak_count=e.peak_count,
                turnover_count=e.turnover_count,
                estimated_queue_length=e.estimated_queue_length,
            )
            for e in events
        ]

    def queue_stacks(self, days: Optional[int] = None) -> List[HeatmapCell]:
        """Ten-minute heatmap cells across days."""
        contributions = decompose_into_buckets(
            self._closed_events(days), Granularity.TEN_MINUTE_SLOT, self.tz,
        )
        return heatmap_cells(contributions)

    def current_queue(self) -> CurrentQueue:
        """
        The open episode, if any.

        A drained location reports no queue even if its event has not been
        closed yet (the next sample closes it).
        """
        latest = self.samples.latest_sample(self.location_id)
        if latest is None or latest.count <= self.thresholds.empty:
            return CurrentQueue(has_queue=False)

        active = self.events.get_active_event(self.location_id)
        return CurrentQueue(has_queue=active is not None, event=active)

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    def dashboard(self, days: Optional[int] = None) -> DashboardSnapshot:
        """
        Live dashboard payload.

        Compares the latest count with the usual count for the current local
        hour over the last ``days`` days and predicts the wait for someone
        joining now.
        """
        days = self._days(days)
        current = self.latest_status()
        hour = to_local(self._now_ms(), self.tz).hour

        records = self.samples.list_samples(self.location_id, since=self._since(days))
        hour_counts = np.array([
            r.count for r in records if to_local(r.timestamp, self.tz).hour == hour
        ])
        hour_bucket = next(
            (s for s in self.weekly_hourly(days) if s.bucket_key == f"{hour:02d}"),
            None,
        )

        mean_count = float(np.mean(hour_counts)) if hour_counts.size else 0.0
        average = HourAverage(
            count=round(mean_count),
            max_count=int(np.max(hour_counts)) if hour_counts.size else 0,
            min_count=int(np.min(hour_counts)) if hour_counts.size else 0,
            queue=round(hour_bucket.avg_estimated_queue) if hour_bucket else 0,
            duration_minutes=round(hour_bucket.avg_minutes) if hour_bucket else 0,
        )

        percentage = 0
        if mean_count > 0:
            percentage = min(200, round(current.count / mean_count * 100))
        trend = self._trend()
        comparison = Comparison(
            percentage=percentage,
            trend=trend,
            trend_icon=_TREND_ICONS[trend],
        )

        progress = QueueProgress()
        queue = self.current_queue()
        if queue.has_queue and queue.event is not None:
            processed = queue.event.refill_count
            remaining = queue.event.estimated_queue_length
            progress = QueueProgress(
                processed=processed,
                remaining=remaining,
                total=processed + remaining,
            )

        prediction = Prediction()
        if progress.remaining > 0:
            per_person = self.config.fallback_minutes_per_person
            if hour_bucket and hour_bucket.avg_estimated_queue > 0 and hour_bucket.avg_minutes > 0:
                per_person = hour_bucket.avg_minutes / hour_bucket.avg_estimated_queue
            prediction = Prediction(
                estimated_minutes=round(progress.remaining * per_person),
                has_queue=True,
            )

        return DashboardSnapshot(
            current=current,
            queue=progress,
            average=average,
            comparison=comparison,
            prediction=prediction,
        )

    def _trend(self) -> str:
        """Direction of the last change, ignoring moves of one person."""
        recent = self.samples.recent_samples(self.location_id, 2)
        if len(recent) < 2:
            return "stable"
        delta = recent[0].count - recent[1].count
        if delta > 1:
            return "rising"
        if delta < -1:
            return "falling"
        return "stable"
