"""
Aggregation
===========

Pure summaries over bucket contributions, queue events and raw samples.

Counting rules:
    - Durations are summed per contribution (an event spanning three
      buckets adds its slice to each of them).
    - Event attributes (peak, turnover, estimate) are averaged once per
      distinct event id within a group. An event spanning three hour
      buckets is one event in each of those buckets, never three.

NO STORE ACCESS. Callers pass in what was read.
"""

import logging
from collections import OrderedDict, defaultdict
from typing import Dict, Iterable, List, Sequence

import numpy as np
from pytz import BaseTzInfo

from queuewatch.analytics.timezone import format_local, to_local
from queuewatch.models.buckets import BucketContribution, BucketSummary, HeatmapCell
from queuewatch.models.output import QueueDayStats, SampleStats, StatusChange
from queuewatch.models.queue_event import QueueEvent
from queuewatch.models.sample import SampleRecord


logger = logging.getLogger(__name__)


def aggregate_by_bucket(contributions: Iterable[BucketContribution]) -> List[BucketSummary]:
    """
    Group contributions by bucket key.

    Args:
        contributions: Output of the decomposition engine

    Returns:
        One summary per bucket key, sorted by key
    """
    groups: Dict[str, List[BucketContribution]] = defaultdict(list)
    for c in contributions:
        groups[c.bucket_key].append(c)

    summaries = []
    for key in sorted(groups):
        items = groups[key]
        total_ms = sum(c.duration_ms for c in items)

        # First contribution per event carries its attributes
        per_event: Dict[int, BucketContribution] = OrderedDict()
        for c in items:
            per_event.setdefault(c.event_id, c)
        events = list(per_event.values())

        peaks = np.array([c.peak_count for c in events])
        turnovers = np.array([c.turnover_count for c in events])
        estimates = np.array([c.estimated_queue_length for c in events])

        summaries.append(BucketSummary(
            bucket_key=key,
            event_count=len(events),
            total_minutes=total_ms / 60_000,
            avg_minutes=total_ms / 60_000 / len(events),
            avg_peak_count=float(np.mean(peaks)),
            max_peak_count=int(np.max(peaks)),
            avg_turnover=float(np.mean(turnovers)),
            avg_estimated_queue=float(np.mean(estimates)),
        ))

    return summaries


def heatmap_cells(contributions: Iterable[BucketContribution]) -> List[HeatmapCell]:
    """
    Ten-minute heatmap cells, ordered by date, slot and event.

    Only the start cell of an event carries turnover and estimate; later
    cells show that the queue was still there.
    """
    cells = []
    for c in contributions:
        cells.append(HeatmapCell(
            event_id=c.event_id,
            date=c.day.isoformat(),
            slot=c.slot_label,
            minutes=c.duration_minutes,
            is_start=c.is_event_start_bucket,
            is_end=c.is_event_end_bucket,
            peak_count=c.peak_count,
            turnover_count=c.turnover_count if c.is_event_start_bucket else None,
            estimated_queue_length=(
                c.estimated_queue_length if c.is_event_start_bucket else None
            ),
        ))
    cells.sort(key=lambda cell: (cell.date, cell.slot, cell.event_id))
    return cells


def queue_stats_by_day(events: Iterable[QueueEvent], tz: BaseTzInfo) -> List[QueueDayStats]:
    """
    Per-day event statistics, newest day first.

    An event belongs to the local day it started on and is counted once.
    """
    by_day: Dict[str, List[QueueEvent]] = defaultdict(list)
    for event in events:
        day = to_local(event.start_time, tz).date().isoformat()
        by_day[day].append(event)

    rows = []
    for day in sorted(by_day, reverse=True):
        items = by_day[day]
        turnovers = np.array([e.turnover_count for e in items])
        estimates = np.array([e.estimated_queue_length for e in items])
        rows.append(QueueDayStats(
            date=day,
            queue_count=len(items),
            avg_turnover=round(float(np.mean(turnovers)), 1),
            max_turnover=int(np.max(turnovers)),
            avg_estimated_queue=round(float(np.mean(estimates)), 1),
            max_estimated_queue=int(np.max(estimates)),
        ))
    return rows


# =============================================================================
# Raw samples
# =============================================================================

def _sample_stats(period: str, records: Sequence[SampleRecord]) -> SampleStats:
    counts = np.array([r.count for r in records])
    return SampleStats(
        period=period,
        avg_count=round(float(np.mean(counts)), 1),
        max_count=int(np.max(counts)),
        min_count=int(np.min(counts)),
        record_count=len(records),
    )


def sample_stats_by_day(records: Iterable[SampleRecord], tz: BaseTzInfo) -> List[SampleStats]:
    """Occupancy statistics per local date, newest first."""
    by_day: Dict[str, List[SampleRecord]] = defaultdict(list)
    for r in records:
        by_day[to_local(r.timestamp, tz).date().isoformat()].append(r)
    return [_sample_stats(day, by_day[day]) for day in sorted(by_day, reverse=True)]


def sample_stats_by_hour(records: Iterable[SampleRecord], tz: BaseTzInfo) -> List[SampleStats]:
    """Occupancy statistics per local hour (``HH``), ascending."""
    by_hour: Dict[str, List[SampleRecord]] = defaultdict(list)
    for r in records:
        by_hour[f"{to_local(r.timestamp, tz).hour:02d}"].append(r)
    return [_sample_stats(hour, by_hour[hour]) for hour in sorted(by_hour)]


def status_changes(records: Iterable[SampleRecord], tz: BaseTzInfo) -> List[StatusChange]:
    """
    Collapse consecutive identical labels.

    Args:
        records: Samples in ascending time order

    Returns:
        The first sample of every run of identical labels, newest first
    """
    changes = []
    previous = None
    for r in records:
        if r.status != previous:
            changes.append(StatusChange(
                status=r.status,
                count=r.count,
                timestamp=r.timestamp,
                formatted_time=format_local(r.timestamp, tz),
            ))
            previous = r.status
    changes.reverse()
    return changes
