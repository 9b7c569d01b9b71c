"""
Queue Detection Transitions
===========================

Pure transition function of the queue detection state machine.

    (DetectionState, Sample) -> (DetectionState, TransitionResult)

The function never touches the store. It describes the store writes a
sample requires as effects (open / update / close); the driver in
``graph.py`` applies them and only then adopts the new state.

Thresholds:
    CAPACITY: occupancy at or above this is "at capacity"
    EMPTY:    occupancy at or below this ends the episode
    EMPTY < CAPACITY always; the gap between them absorbs single-person
    fluctuations so an episode does not flap open and closed.

Transition Rules (evaluated once per sample, in this order):
    0. MONITORING and the episode is older than max_event_minutes
           -> close at this sample (optional, disabled by default)
    1. IDLE + count >= CAPACITY
           -> open event (turnover_count = 1, the first fill)
    2. MONITORING + count >= CAPACITY
           -> previous sample below capacity: turnover (+1, persisted now)
           -> peak = max(peak, count)
    3. MONITORING + count < CAPACITY
           -> arm the refill edge (was_at_capacity = False)
           -> count <= EMPTY: close event, back to IDLE
           -> otherwise: stay open, track the gap minimum
    4. IDLE + count < CAPACITY
           -> nothing

Waiting estimate:
    "turnover"   -> estimated_queue_length = turnover_count
    "gap_refill" -> sum over refills of (refill count - gap minimum)
    Both assume people are admitted as others leave; neither is a head
    count.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from queuewatch.models.reason_codes import ReasonCode
from queuewatch.models.sample import Sample, StatusLabel
from queuewatch.models.state import DetectionPhase, DetectionState
from queuewatch.signals.status import classify


logger = logging.getLogger(__name__)

ESTIMATORS = ("turnover", "gap_refill")


@dataclass
class DetectionThresholds:
    """
    Thresholds and policies for queue detection.

    Loaded from configuration file.
    """

    capacity: int = 6
    empty: int = 2
    estimator: str = "turnover"
    max_event_minutes: Optional[float] = None

    def __post_init__(self) -> None:
        if self.empty >= self.capacity:
            raise ValueError(
                f"empty threshold ({self.empty}) must be lower than "
                f"capacity threshold ({self.capacity})"
            )
        if self.empty < 0:
            raise ValueError("empty threshold must be non-negative")
        if self.estimator not in ESTIMATORS:
            raise ValueError(f"Unknown estimator: {self.estimator}")
        if self.max_event_minutes is not None and self.max_event_minutes <= 0:
            raise ValueError("max_event_minutes must be positive")


# =============================================================================
# Effects
# =============================================================================

@dataclass(frozen=True)
class OpenEvent:
    """Insert a new open event; the store assigns the id."""

    location_id: str
    start_time: int
    peak_count: int
    turnover_count: int
    estimated_queue_length: int


@dataclass(frozen=True)
class UpdateEvent:
    """Overwrite the counters of the currently open event."""

    turnover_count: int
    peak_count: int
    estimated_queue_length: int


@dataclass(frozen=True)
class CloseEvent:
    """Set the end time of the currently open event."""

    end_time: int


StoreEffect = Union[OpenEvent, UpdateEvent, CloseEvent]


@dataclass
class TransitionResult:
    """Result of evaluating one sample."""

    reason_code: ReasonCode
    status: StatusLabel
    status_changed: bool
    effects: Tuple[StoreEffect, ...] = field(default_factory=tuple)

    @property
    def transition_occurred(self) -> bool:
        """Whether the sample requires a store write."""
        return bool(self.effects)

    def __repr__(self) -> str:
        return (
            f"TransitionResult({self.reason_code.value}, "
            f"status={self.status.value}, effects={len(self.effects)})"
        )


# =============================================================================
# Policy
# =============================================================================

class DetectionPolicy:
    """
    Deterministic queue detection policy.

    Given the same state and sample, ``evaluate`` always returns the same
    new state and effects. It holds no mutable state of its own, so one
    policy can serve any number of locations.
    """

    def __init__(self, thresholds: DetectionThresholds) -> None:
        """
        Initialize detection policy.

        Args:
            thresholds: Configured threshold values
        """
        self.thresholds = thresholds
        logger.info(
            f"DetectionPolicy initialized: capacity={thresholds.capacity}, "
            f"empty={thresholds.empty}, estimator={thresholds.estimator}"
        )

    def evaluate(
        self,
        state: DetectionState,
        sample: Sample,
    ) -> Tuple[DetectionState, TransitionResult]:
        """
        Evaluate one sample.

        Args:
            state: Current detection state
            sample: Validated sample

        Returns:
            Tuple of (new_state, transition_result). ``new_state`` of an
            opening transition has ``active_event_id`` None; the driver fills
            it in once the store has assigned one.
        """
        status = classify(sample.count)
        bookkeeping = {
            "last_status": status,
            "last_sample_at": sample.timestamp,
            "samples_processed": state.samples_processed + 1,
        }
        status_changed = status != state.last_status

        th = self.thresholds
        at_capacity = sample.count >= th.capacity

        if state.is_active and self._exceeds_max_duration(state, sample):
            return self._close(
                state, sample, bookkeeping, status, status_changed,
                ReasonCode.MAX_DURATION_EXCEEDED,
            )

        if not state.is_active:
            if at_capacity:
                return self._open(state, sample, bookkeeping, status, status_changed)
            new_state = state.model_copy(update=bookkeeping)
            return new_state, TransitionResult(ReasonCode.IDLE, status, status_changed)

        if at_capacity:
            return self._at_capacity(state, sample, bookkeeping, status, status_changed)

        if sample.count <= th.empty:
            return self._close(
                state, sample, bookkeeping, status, status_changed,
                ReasonCode.QUEUE_DRAINED,
            )

        # Below capacity while monitoring: arm the refill edge
        gap_min = sample.count
        if state.min_count_during_gap is not None:
            gap_min = min(gap_min, state.min_count_during_gap)

        new_state = state.model_copy(update={
            **bookkeeping,
            "was_at_capacity": False,
            "min_count_during_gap": gap_min,
        })
        return new_state, TransitionResult(
            ReasonCode.GAP_BELOW_CAPACITY, status, status_changed,
        )

    def _open(
        self,
        state: DetectionState,
        sample: Sample,
        bookkeeping: dict,
        status: StatusLabel,
        status_changed: bool,
    ) -> Tuple[DetectionState, TransitionResult]:
        """Open a new episode at this sample."""
        turnover = 1
        estimate = turnover if self.thresholds.estimator == "turnover" else 0

        new_state = state.model_copy(update={
            **bookkeeping,
            "phase": DetectionPhase.MONITORING,
            "was_at_capacity": True,
            "active_event_id": None,
            "started_at": sample.timestamp,
            "peak_count": sample.count,
            "turnover_count": turnover,
            "estimated_queue_length": estimate,
            "min_count_during_gap": None,
            "waiting_total": 0,
        })
        effect = OpenEvent(
            location_id=state.location_id,
            start_time=sample.timestamp,
            peak_count=sample.count,
            turnover_count=turnover,
            estimated_queue_length=estimate,
        )
        return new_state, TransitionResult(
            ReasonCode.QUEUE_STARTED, status, status_changed, (effect,),
        )

    def _at_capacity(
        self,
        state: DetectionState,
        sample: Sample,
        bookkeeping: dict,
        status: StatusLabel,
        status_changed: bool,
    ) -> Tuple[DetectionState, TransitionResult]:
        """Monitoring and at capacity: detect refill edges and peaks."""
        peak = max(state.peak_count, sample.count)
        turnover = state.turnover_count
        waiting_total = state.waiting_total
        estimate = state.estimated_queue_length
        reason = ReasonCode.AT_CAPACITY

        if not state.was_at_capacity:
            turnover += 1
            gap_min = state.min_count_during_gap
            if gap_min is None:
                gap_min = sample.count
            waiting_total += max(0, sample.count - gap_min)
            estimate = self._estimate(turnover, waiting_total)
            reason = ReasonCode.TURNOVER_DETECTED
        elif peak > state.peak_count:
            reason = ReasonCode.PEAK_RAISED

        new_state = state.model_copy(update={
            **bookkeeping,
            "was_at_capacity": True,
            "peak_count": peak,
            "turnover_count": turnover,
            "estimated_queue_length": estimate,
            "waiting_total": waiting_total,
            "min_count_during_gap": None,
        })

        effects: Tuple[StoreEffect, ...] = ()
        if reason != ReasonCode.AT_CAPACITY:
            effects = (UpdateEvent(
                turnover_count=turnover,
                peak_count=peak,
                estimated_queue_length=estimate,
            ),)

        return new_state, TransitionResult(reason, status, status_changed, effects)

    def _close(
        self,
        state: DetectionState,
        sample: Sample,
        bookkeeping: dict,
        status: StatusLabel,
        status_changed: bool,
        reason: ReasonCode,
    ) -> Tuple[DetectionState, TransitionResult]:
        """Close the open episode and reset every working field."""
        new_state = DetectionState(location_id=state.location_id, **bookkeeping)
        return new_state, TransitionResult(
            reason, status, status_changed, (CloseEvent(end_time=sample.timestamp),),
        )

    def _estimate(self, turnover: int, waiting_total: int) -> int:
        if self.thresholds.estimator == "gap_refill":
            return waiting_total
        return turnover

    def _exceeds_max_duration(self, state: DetectionState, sample: Sample) -> bool:
        limit = self.thresholds.max_event_minutes
        if limit is None or state.started_at is None:
            return False
        return sample.timestamp - state.started_at >= limit * 60_000
