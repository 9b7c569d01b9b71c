"""
Analytics
=========

Time-bucket decomposition and reporting over queue events and samples.

Components:
    - buckets: Split closed events over hour / ten-minute grids
    - aggregation: Pure summaries (bucket, day, sample, status changes)
    - reports: ReportService, the read-only queries behind the API
    - timezone: pytz resolution and ms conversions
"""

from queuewatch.analytics.aggregation import (
    aggregate_by_bucket,
    heatmap_cells,
    queue_stats_by_day,
    sample_stats_by_day,
    sample_stats_by_hour,
    status_changes,
)
from queuewatch.analytics.buckets import decompose_event, decompose_into_buckets
from queuewatch.analytics.reports import ReportService
from queuewatch.analytics.timezone import resolve_pytz

__all__ = [
    "decompose_event",
    "decompose_into_buckets",
    "aggregate_by_bucket",
    "heatmap_cells",
    "queue_stats_by_day",
    "sample_stats_by_day",
    "sample_stats_by_hour",
    "status_changes",
    "ReportService",
    "resolve_pytz",
]
