"""
Detection State Models
======================

In-memory state of the queue detection state machine for one location.

Core Concepts:
    - DetectionPhase: IDLE (no episode) or MONITORING (episode open)
    - DetectionState: Everything the transition function needs to decide
      what the next sample means

The state lives only in memory and is rebuilt empty on every process
start. An episode that was open when the process stopped cannot be
resumed; see ``queuewatch.agent.recovery``.

Example:
    from queuewatch.models.state import DetectionState

    state = DetectionState(location_id="front-counter")
    assert not state.is_active
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from queuewatch.models.sample import StatusLabel


class DetectionPhase(str, Enum):
    """
    Top-level states of the detector.

    Attributes:
        IDLE: No queue episode is open
        MONITORING: A queue episode is open
    """

    IDLE = "IDLE"
    MONITORING = "MONITORING"


class DetectionState(BaseModel):
    """
    Full working state of one location's detector.

    While MONITORING, ``peak_count``, ``turnover_count`` and
    ``estimated_queue_length`` mirror the open QueueEvent and are the
    authoritative copy; the store is updated on every transition.

    Attributes:
        location_id: Monitored site this state belongs to
        phase: IDLE or MONITORING
        was_at_capacity: Previous sample was at/above capacity
        active_event_id: Store id of the open event
        started_at: Start time of the open event (ms epoch)
        peak_count: Maximum occupancy during the open episode
        turnover_count: First fill plus refills of the open episode
        estimated_queue_length: Current waiting estimate
        min_count_during_gap: Lowest count since dropping below capacity
        waiting_total: Sum of refill sizes (gap_refill estimator)
        last_status: Label of the previous sample
        last_sample_at: Timestamp of the previous sample (ms epoch)
        samples_processed: Samples evaluated since start
    """

    location_id: str = Field(..., description="Monitored site")

    phase: DetectionPhase = Field(
        default=DetectionPhase.IDLE,
        description="IDLE or MONITORING",
    )

    was_at_capacity: bool = Field(
        default=False,
        description="Whether the previous sample was at or above capacity",
    )

    active_event_id: Optional[int] = Field(
        default=None,
        description="Store id of the open event",
    )

    started_at: Optional[int] = Field(
        default=None,
        description="Start time of the open episode (ms epoch)",
    )

    peak_count: int = Field(default=0, ge=0)
    turnover_count: int = Field(default=0, ge=0)
    estimated_queue_length: int = Field(default=0, ge=0)

    min_count_during_gap: Optional[int] = Field(
        default=None,
        description="Lowest count seen since the last drop below capacity",
    )

    waiting_total: int = Field(
        default=0,
        ge=0,
        description="Accumulated refill sizes for the gap_refill estimator",
    )

    last_status: Optional[StatusLabel] = Field(
        default=None,
        description="Status label of the previous sample",
    )

    last_sample_at: Optional[int] = Field(
        default=None,
        description="Timestamp of the previous sample (ms epoch)",
    )

    samples_processed: int = Field(default=0, ge=0)

    class Config:
        """Pydantic model configuration."""

        use_enum_values = False  # Keep enum as enum, not string

    @property
    def is_active(self) -> bool:
        """Whether a queue episode is currently open."""
        return self.phase == DetectionPhase.MONITORING
