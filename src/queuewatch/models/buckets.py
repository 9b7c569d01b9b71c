"""
Bucket Models
=============

Records produced by the bucket decomposition engine and the summaries
built from them.

A BucketContribution is the part of one closed queue event that falls
inside one calendar bucket on one local day. Contributions are derived on
every reporting query and never stored.

Event-level attributes (peak, turnover, estimate) are carried unchanged on
every contribution of an event. Averages over them must be taken once per
distinct event, not once per contribution.
"""

from dataclasses import dataclass
from datetime import date, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Granularity(str, Enum):
    """
    Supported bucket grids.

    Attributes:
        HOUR_OF_DAY: One bucket per local hour (weekly-hourly aggregates)
        TEN_MINUTE_SLOT: One bucket per 10-minute slot per day (heatmaps)
    """

    HOUR_OF_DAY = "hour_of_day"
    TEN_MINUTE_SLOT = "ten_minute_slot"

    @property
    def bucket_minutes(self) -> int:
        """Bucket width in minutes."""
        return 60 if self is Granularity.HOUR_OF_DAY else 10


@dataclass(frozen=True, slots=True)
class BucketContribution:
    """
    Portion of one queue event inside one bucket.

    Attributes:
        event_id: Source event
        granularity: Grid the bucket belongs to
        day: Local calendar date of the bucket
        slot_start: Local wall-clock start of the bucket
        duration_ms: Part of the event inside this bucket
        is_event_start_bucket: The event began in this bucket
        is_event_end_bucket: The event ended in this bucket
        peak_count: Event peak (carried)
        turnover_count: Event turnover count (carried)
        estimated_queue_length: Event waiting estimate (carried)
    """

    event_id: int
    granularity: Granularity
    day: date
    slot_start: time
    duration_ms: int
    is_event_start_bucket: bool
    is_event_end_bucket: bool
    peak_count: int
    turnover_count: int
    estimated_queue_length: int

    @property
    def duration_minutes(self) -> float:
        """Duration inside the bucket in minutes."""
        return self.duration_ms / 60_000

    @property
    def slot_label(self) -> str:
        """Slot start as ``HH:MM``."""
        return self.slot_start.strftime("%H:%M")

    @property
    def bucket_key(self) -> str:
        """
        Grouping key used by the aggregation layer.

        Hour-of-day buckets group across days (``"13"``); ten-minute slots
        keep the day (``"2025-11-10 13:20"``).
        """
        if self.granularity is Granularity.HOUR_OF_DAY:
            return f"{self.slot_start.hour:02d}"
        return f"{self.day.isoformat()} {self.slot_label}"


class BucketSummary(BaseModel):
    """
    Aggregate over all contributions sharing a bucket key.

    Duration figures are summed per contribution; event attributes are
    averaged once per distinct event touching the bucket.
    """

    bucket_key: str = Field(..., description="Hour (HH) or date + slot")
    event_count: int = Field(..., ge=0, description="Distinct events touching the bucket")
    total_minutes: float = Field(..., ge=0, description="Queue minutes inside the bucket")
    avg_minutes: float = Field(..., ge=0, description="Queue minutes per distinct event")
    avg_peak_count: float = Field(..., ge=0)
    max_peak_count: int = Field(..., ge=0)
    avg_turnover: float = Field(..., ge=0)
    avg_estimated_queue: float = Field(..., ge=0)


class HeatmapCell(BaseModel):
    """
    One event's presence in one ten-minute heatmap slot.

    The start cell carries the turnover count; continuation cells only mark
    that the queue was still present.
    """

    event_id: int
    date: str = Field(..., description="Local date (YYYY-MM-DD)")
    slot: str = Field(..., description="Slot start (HH:MM)")
    minutes: float = Field(..., ge=0)
    is_start: bool
    is_end: bool
    peak_count: int
    turnover_count: Optional[int] = Field(
        default=None,
        description="Present on the start cell only",
    )
    estimated_queue_length: Optional[int] = Field(
        default=None,
        description="Present on the start cell only",
    )
