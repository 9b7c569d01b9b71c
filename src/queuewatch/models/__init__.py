"""
Data Models
===========

Typed models for queuewatch.

Models:
    Samples:
        - Sample: Validated (timestamp, count) observation
        - SampleRecord: Sample read back from the sample log
        - StatusLabel: VACANT, SLIGHTLY_BUSY, VERY_CROWDED

    Detection:
        - QueueEvent: Stored queue episode
        - DetectionPhase / DetectionState: In-memory detector state
        - ReasonCode: Per-sample detection outcome

    Buckets:
        - Granularity: HOUR_OF_DAY or TEN_MINUTE_SLOT
        - BucketContribution: Event slice inside one bucket
        - BucketSummary, HeatmapCell: Aggregated views

    Output:
        - Report rows and the dashboard snapshot
"""

from queuewatch.models.sample import Sample, SampleRecord, StatusLabel
from queuewatch.models.queue_event import QueueEvent
from queuewatch.models.state import DetectionPhase, DetectionState
from queuewatch.models.reason_codes import ReasonCode
from queuewatch.models.buckets import (
    BucketContribution,
    BucketSummary,
    Granularity,
    HeatmapCell,
)
from queuewatch.models.output import (
    CurrentQueue,
    DashboardSnapshot,
    QueueDayStats,
    QueueHistoryEntry,
    SampleStats,
    StatusChange,
)

__all__ = [
    # Samples
    "Sample",
    "SampleRecord",
    "StatusLabel",
    # Detection
    "QueueEvent",
    "DetectionPhase",
    "DetectionState",
    "ReasonCode",
    # Buckets
    "Granularity",
    "BucketContribution",
    "BucketSummary",
    "HeatmapCell",
    # Output
    "SampleStats",
    "StatusChange",
    "QueueDayStats",
    "QueueHistoryEntry",
    "CurrentQueue",
    "DashboardSnapshot",
]
