"""
Queue Event Model
=================

One contiguous "line" episode at a monitored location.

Lifecycle:
    - created when occupancy first reaches capacity from a non-full state
    - updated on every turnover (refill) and whenever the peak rises
    - closed when occupancy drains to the empty threshold

Turnover convention:
    ``turnover_count`` starts at 1 when the event opens (the first fill)
    and grows by one per refill. ``refill_count`` is the number of refills
    actually observed. The waiting estimate is an approximation that assumes
    one person is admitted per refill; it is not a head count.
"""

from typing import Optional

from pydantic import BaseModel, Field


class QueueEvent(BaseModel):
    """
    Queue episode as stored in the event store.

    Attributes:
        id: Store-assigned identifier
        location_id: Monitored site
        start_time: Episode start (ms epoch)
        end_time: Episode end (ms epoch), None while open
        peak_count: Highest occupancy seen during the episode
        turnover_count: First fill plus every observed refill
        estimated_queue_length: Approximate number of people waiting
    """

    id: int = Field(..., description="Store-assigned identifier")
    location_id: str = Field(..., description="Monitored site")
    start_time: int = Field(..., ge=0, description="Episode start (ms epoch)")
    end_time: Optional[int] = Field(
        default=None,
        description="Episode end (ms epoch), None while the episode is open",
    )
    peak_count: int = Field(..., ge=0, description="Highest occupancy seen")
    turnover_count: int = Field(default=1, ge=1, description="First fill + refills")
    estimated_queue_length: int = Field(
        default=0,
        ge=0,
        description="Approximate people waiting (turnover heuristic, not a head count)",
    )

    @property
    def is_open(self) -> bool:
        """Whether the episode has not been closed yet."""
        return self.end_time is None

    @property
    def refill_count(self) -> int:
        """Refills observed after the first fill."""
        return max(0, self.turnover_count - 1)

    @property
    def duration_ms(self) -> Optional[int]:
        """Episode length in milliseconds, None while open."""
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def duration_minutes(self) -> Optional[float]:
        """Episode length in minutes, None while open."""
        duration = self.duration_ms
        return None if duration is None else duration / 60_000
