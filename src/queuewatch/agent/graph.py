"""
Queue Monitor Graph
===================

LangGraph state machine driving queue detection for one location.

LangGraph is used for CONTROL FLOW only: each sample runs through

    START -> evaluate -> persist -> notify -> END

    evaluate: DetectionPolicy.evaluate (pure, no I/O)
    persist:  log the sample and apply open/update/close effects to the
              store in one transaction
    notify:   call the status-change hook when the label changed

The new DetectionState is adopted only after the whole graph ran. When a
store write fails the exception propagates out of ``process`` and the
monitor keeps its previous state, so memory never runs ahead of the store.
If the open event has vanished from the store the episode is dropped and
the monitor returns to IDLE instead of failing on every later sample.

Samples for one location are processed one at a time under a lock.
Monitors for different locations share nothing (see ``registry.py``).
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, TypedDict

from langgraph.graph import StateGraph, END

from queuewatch.agent.transitions import (
    CloseEvent,
    DetectionPolicy,
    DetectionThresholds,
    OpenEvent,
    TransitionResult,
    UpdateEvent,
)
from queuewatch.errors import EventNotFoundError
from queuewatch.models.reason_codes import ReasonCode
from queuewatch.models.sample import Sample, StatusLabel
from queuewatch.models.state import DetectionState
from queuewatch.signals.validator import SampleValidator
from queuewatch.store.base import EventStore, SampleLog


logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, StatusLabel, Sample], None]


class MonitorGraphState(TypedDict):
    """
    State passed through the monitor graph.

    Attributes:
        detection_state: State after this sample (being built)
        previous_state: State before this sample
        sample: Sample being processed
        result: Transition result from the evaluate node
    """
    detection_state: DetectionState
    previous_state: Optional[DetectionState]
    sample: Optional[Sample]
    result: Optional[TransitionResult]


class QueueMonitorGraph:
    """
    LangGraph-based queue monitor for one location.

    Example:
        with SQLiteStore("queuewatch.db") as store:
            monitor = QueueMonitorGraph("front", store, sample_log=store)
            monitor.ingest(1731200000000, 6)
    """

    def __init__(
        self,
        location_id: str,
        store: EventStore,
        thresholds: Optional[DetectionThresholds] = None,
        sample_log: Optional[SampleLog] = None,
        on_status_change: Optional[StatusCallback] = None,
        log_every_n_samples: int = 30,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            location_id: Monitored site
            store: Event store receiving open/update/close calls
            thresholds: Detection thresholds (defaults if None)
            sample_log: Where accepted samples are recorded (optional)
            on_status_change: Hook called when the status label changes
            log_every_n_samples: Log a state summary every N samples
        """
        self.location_id = location_id
        self.store = store
        self.sample_log = sample_log
        self.thresholds = thresholds or DetectionThresholds()
        self.policy = DetectionPolicy(self.thresholds)
        self.on_status_change = on_status_change
        self.log_every_n_samples = log_every_n_samples
        self.validator = SampleValidator()

        self._lock = threading.Lock()
        self._graph = self._build_graph()
        self._state = DetectionState(location_id=location_id)
        self._failed_samples = 0

        logger.info(f"QueueMonitorGraph initialized for location {location_id}")

    def _build_graph(self) -> Any:
        """Build the LangGraph workflow."""
        workflow = StateGraph(MonitorGraphState)

        workflow.add_node("evaluate", self._evaluate_node)
        workflow.add_node("persist", self._persist_node)
        workflow.add_node("notify", self._notify_node)

        workflow.set_entry_point("evaluate")
        workflow.add_edge("evaluate", "persist")
        workflow.add_edge("persist", "notify")
        workflow.add_edge("notify", END)

        return workflow.compile()

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def _evaluate_node(self, state: MonitorGraphState) -> Dict[str, Any]:
        """Apply the pure transition policy."""
        previous = state["detection_state"]
        new_state, result = self.policy.evaluate(previous, state["sample"])
        return {
            "previous_state": previous,
            "detection_state": new_state,
            "result": result,
        }

    def _persist_node(self, state: MonitorGraphState) -> Dict[str, Any]:
        """
        Write the sample and the transition effects to the store.

        The sample row and the event writes share one store transaction:
        either the sample is logged with all its effects or nothing is, so
        replaying the sample log reproduces the stored events.

        An update or close of an event that is no longer in the store
        (deleted by a rebuild, for instance) resets the monitor to IDLE and
        keeps the sample. Any other store error propagates.
        """
        sample = state["sample"]
        result = state["result"]
        previous = state["previous_state"]
        new_state = state["detection_state"]

        with self.store.transaction():
            if self.sample_log is not None:
                self.sample_log.record_sample(self.location_id, sample, result.status)

            for effect in result.effects:
                if isinstance(effect, OpenEvent):
                    event_id = self.store.create_event(
                        effect.location_id,
                        effect.start_time,
                        effect.peak_count,
                        turnover_count=effect.turnover_count,
                        estimated_queue_length=effect.estimated_queue_length,
                    )
                    new_state = new_state.model_copy(update={"active_event_id": event_id})
                    logger.warning(
                        f"QUEUE STARTED: location={self.location_id} event={event_id} "
                        f"count={sample.count}"
                    )
                elif isinstance(effect, UpdateEvent):
                    event_id = self._open_event_id(previous)
                    try:
                        self.store.update_event(
                            event_id,
                            turnover_count=effect.turnover_count,
                            peak_count=effect.peak_count,
                            estimated_queue_length=effect.estimated_queue_length,
                        )
                    except EventNotFoundError as e:
                        return self._event_missing(new_state, result, e)
                    if result.reason_code == ReasonCode.TURNOVER_DETECTED:
                        logger.info(
                            f"Turnover: event={event_id} turnover={effect.turnover_count} "
                            f"estimate={effect.estimated_queue_length}"
                        )
                elif isinstance(effect, CloseEvent):
                    event_id = self._open_event_id(previous)
                    try:
                        self.store.close_event(event_id, effect.end_time)
                    except EventNotFoundError as e:
                        return self._event_missing(new_state, result, e)
                    minutes = (effect.end_time - (previous.started_at or effect.end_time)) / 60_000
                    logger.warning(
                        f"QUEUE ENDED: location={self.location_id} event={event_id} "
                        f"reason={result.reason_code.value} duration={minutes:.1f}min "
                        f"peak={previous.peak_count} turnover={previous.turnover_count}"
                    )

        return {"detection_state": new_state}

    def _event_missing(
        self,
        new_state: DetectionState,
        result: TransitionResult,
        error: EventNotFoundError,
    ) -> Dict[str, Any]:
        """Drop the lost episode and return to IDLE at this sample."""
        logger.error(
            f"{error}; location {self.location_id} dropped its open episode "
            "and is back to IDLE"
        )
        idle = DetectionState(
            location_id=self.location_id,
            last_status=new_state.last_status,
            last_sample_at=new_state.last_sample_at,
            samples_processed=new_state.samples_processed,
        )
        return {
            "detection_state": idle,
            "result": TransitionResult(
                ReasonCode.EVENT_MISSING, result.status, result.status_changed,
            ),
        }

    def _notify_node(self, state: MonitorGraphState) -> Dict[str, Any]:
        """Invoke the status-change hook; transport failures are logged."""
        result = state["result"]
        if result.status_changed and self.on_status_change is not None:
            try:
                self.on_status_change(self.location_id, result.status, state["sample"])
            except Exception as e:
                logger.error(f"Status notification failed: {e}")
        return {"result": result}

    def _open_event_id(self, previous: Optional[DetectionState]) -> int:
        if previous is None or previous.active_event_id is None:
            raise RuntimeError(
                f"No open event id for location {self.location_id}; "
                "detector state and store are out of sync"
            )
        return previous.active_event_id

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def process(self, sample: Sample) -> TransitionResult:
        """
        Process one validated sample.

        Args:
            sample: Sample that already passed boundary validation

        Returns:
            TransitionResult for the sample

        Raises:
            StoreError: If persisting the sample or its effects failed. The
                monitor state is left unchanged.
        """
        with self._lock:
            try:
                output = self._graph.invoke({
                    "detection_state": self._state,
                    "previous_state": None,
                    "sample": sample,
                    "result": None,
                })
            except Exception:
                self._failed_samples += 1
                logger.error(
                    f"Sample t={sample.timestamp} not applied for location "
                    f"{self.location_id}; state kept at previous sample"
                )
                raise

            self._state = output["detection_state"]
            result: TransitionResult = output["result"]

        if self._state.samples_processed % self.log_every_n_samples == 0:
            logger.info(
                f"Monitor [{self.location_id} sample {self._state.samples_processed}]: "
                f"phase={self._state.phase.value}, status={result.status.value}, "
                f"turnover={self._state.turnover_count}, peak={self._state.peak_count}"
            )

        return result

    def ingest(self, timestamp: Any, count: Any) -> Optional[TransitionResult]:
        """
        Validate a raw observation and process it.

        Malformed, negative, duplicate and out-of-order observations are
        dropped by the validator and return None.
        """
        sample = self.validator.validate(timestamp, count)
        if sample is None:
            return None
        return self.process(sample)

    @property
    def state(self) -> DetectionState:
        """Current detection state."""
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state.is_active

    def reset(self) -> None:
        """Reset the monitor to an empty IDLE state."""
        with self._lock:
            self._state = DetectionState(location_id=self.location_id)
            self.validator.reset()
        logger.info(f"QueueMonitorGraph reset for location {self.location_id}")

    def get_metrics(self) -> Dict[str, Any]:
        """Get monitor metrics for observability."""
        s = self._state
        return {
            "location_id": self.location_id,
            "phase": s.phase.value,
            "active_event_id": s.active_event_id,
            "turnover_count": s.turnover_count,
            "peak_count": s.peak_count,
            "samples_processed": s.samples_processed,
            "failed_samples": self._failed_samples,
            **self.validator.metrics.to_dict(),
        }
