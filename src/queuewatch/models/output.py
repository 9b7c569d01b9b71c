"""
Report Output Models
====================

Response shapes returned by the reporting layer and the HTTP API.

Design Rules:
    - Every report row is a pydantic model so the API can serialize it
      with ``model_dump(mode="json")``
    - Waiting figures are estimates from turnover counting, not head counts
"""

from typing import Optional

from pydantic import BaseModel, Field

from queuewatch.models.queue_event import QueueEvent
from queuewatch.models.sample import StatusLabel


class SampleStats(BaseModel):
    """Occupancy aggregate over one day or one hour."""

    period: str = Field(..., description="Local date (YYYY-MM-DD) or hour (HH)")
    avg_count: float = Field(..., ge=0)
    max_count: int = Field(..., ge=0)
    min_count: int = Field(..., ge=0)
    record_count: int = Field(..., ge=0)


class StatusChange(BaseModel):
    """A sample whose label differs from the one before it."""

    status: StatusLabel
    count: int
    timestamp: int
    formatted_time: str


class QueueDayStats(BaseModel):
    """Queue events started on one local day."""

    date: str
    queue_count: int = Field(..., ge=0)
    avg_turnover: float = Field(..., ge=0)
    max_turnover: int = Field(..., ge=0)
    avg_estimated_queue: float = Field(..., ge=0)
    max_estimated_queue: int = Field(..., ge=0)


class QueueHistoryEntry(BaseModel):
    """A closed queue event formatted for display."""

    id: int
    start_time: int
    end_time: int
    start_formatted: str
    end_formatted: str
    duration_minutes: int
    peak_count: int
    turnover_count: int
    estimated_queue_length: int


class CurrentQueue(BaseModel):
    """The open episode, if the latest reading still indicates a queue."""

    has_queue: bool
    event: Optional[QueueEvent] = None


class CurrentReading(BaseModel):
    """Latest recorded sample."""

    count: int = 0
    status: Optional[StatusLabel] = None
    timestamp: Optional[int] = None
    formatted_time: Optional[str] = None


class QueueProgress(BaseModel):
    """Served / remaining estimate for the open episode."""

    processed: int = 0
    remaining: int = 0
    total: int = 0


class HourAverage(BaseModel):
    """Typical figures for the current local hour over the lookback window."""

    count: int = 0
    max_count: int = 0
    min_count: int = 0
    queue: int = 0
    duration_minutes: int = 0


class Comparison(BaseModel):
    """How busy it is now compared with the usual for this hour."""

    percentage: int = Field(default=0, ge=0, le=200)
    trend: str = Field(default="stable", description="rising, falling or stable")
    trend_icon: str = "→"


class Prediction(BaseModel):
    """Rough wait estimate for someone joining now."""

    estimated_minutes: int = 0
    has_queue: bool = False


class DashboardSnapshot(BaseModel):
    """Everything the live dashboard header needs in one payload."""

    current: CurrentReading
    queue: QueueProgress
    average: HourAverage
    comparison: Comparison
    prediction: Prediction
