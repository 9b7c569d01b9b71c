"""
Startup Recovery and Replay
===========================

Detection state lives only in memory, so an episode that was open when the
process stopped cannot be resumed: a clean shutdown mid-episode looks the
same as lost samples. At startup every open event of the location is
resolved with one policy, applied to all of them:

    delete       remove the event (default; it cannot be trusted)
    force_close  close it at the last sample recorded before shutdown

``rebuild_events`` regenerates a location's events from the sample log by
replaying it through the state machine. Used after threshold changes or to
repair events written by an older detector.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from queuewatch.agent.graph import QueueMonitorGraph
from queuewatch.agent.transitions import CloseEvent, DetectionThresholds
from queuewatch.store.base import EventStore, SampleLog


logger = logging.getLogger(__name__)

ORPHAN_POLICIES = ("delete", "force_close")


@dataclass
class RecoveryReport:
    """Outcome of orphan recovery."""

    policy: str
    event_ids: List[int] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.event_ids)


@dataclass
class RebuildReport:
    """Outcome of an event rebuild."""

    deleted: int
    generated: int
    samples_replayed: int
    discarded_open_event: bool


def recover_orphans(
    store: EventStore,
    location_id: str,
    policy: str = "delete",
    sample_log: Optional[SampleLog] = None,
) -> RecoveryReport:
    """
    Resolve events left open by a previous run.

    Args:
        store: Event store
        location_id: Location to check
        policy: "delete" or "force_close"
        sample_log: Needed by force_close to find the last sample time;
            without it the event is closed at its own start time

    Returns:
        RecoveryReport listing the affected event ids
    """
    if policy not in ORPHAN_POLICIES:
        raise ValueError(f"Unknown orphan policy: {policy}")

    report = RecoveryReport(policy=policy)
    orphans = store.list_open_events(location_id)
    if not orphans:
        logger.info(f"No orphaned queue events for location {location_id}")
        return report

    for index, event in enumerate(orphans):
        if policy == "delete":
            store.delete_event(event.id)
            logger.warning(
                f"Deleted orphaned queue event {event.id} (started {event.start_time}); "
                "its state was lost on restart"
            )
        else:
            next_start = orphans[index + 1].start_time if index + 1 < len(orphans) else None
            end_time = _last_seen(sample_log, location_id, event.start_time, next_start)
            store.close_event(event.id, end_time)
            logger.warning(
                f"Force-closed orphaned queue event {event.id} at {end_time} "
                f"(last sample before restart)"
            )
        report.event_ids.append(event.id)

    return report


def _last_seen(
    sample_log: Optional[SampleLog],
    location_id: str,
    start_time: int,
    next_start: Optional[int],
) -> int:
    """Timestamp of the last sample belonging to an orphaned episode."""
    if sample_log is None:
        return start_time
    before = next_start - 1 if next_start is not None else None
    last = sample_log.latest_sample(location_id, before=before)
    if last is None or last.timestamp < start_time:
        return start_time
    return last.timestamp


def rebuild_events(
    store: EventStore,
    sample_log: SampleLog,
    location_id: str,
    thresholds: DetectionThresholds,
) -> RebuildReport:
    """
    Delete a location's events and regenerate them from the sample log.

    A trailing episode that is still open at the end of the log is
    discarded; the live monitor will open it again if it is still going.

    Args:
        store: Event store to rewrite
        sample_log: Source of samples
        location_id: Location to rebuild
        thresholds: Detection thresholds to replay with

    Returns:
        RebuildReport with deleted/generated counts
    """
    samples = sample_log.list_samples(location_id)
    deleted = store.delete_events(location_id)
    logger.info(
        f"Rebuilding queue events for {location_id}: deleted {deleted}, "
        f"replaying {len(samples)} samples"
    )

    monitor = QueueMonitorGraph(
        location_id,
        store,
        thresholds=thresholds,
        log_every_n_samples=max(1, len(samples)),
    )

    generated = 0
    replayed = 0
    for record in samples:
        result = monitor.ingest(record.timestamp, record.count)
        if result is None:
            continue
        replayed += 1
        if any(isinstance(e, CloseEvent) for e in result.effects):
            generated += 1

    discarded = False
    if monitor.is_active and monitor.state.active_event_id is not None:
        store.delete_event(monitor.state.active_event_id)
        discarded = True
        logger.warning(
            f"Discarded unfinished episode starting {monitor.state.started_at} "
            f"(peak {monitor.state.peak_count}, turnover {monitor.state.turnover_count})"
        )

    logger.info(f"Rebuild complete: generated {generated} queue events")
    return RebuildReport(
        deleted=deleted,
        generated=generated,
        samples_replayed=replayed,
        discarded_open_event=discarded,
    )
