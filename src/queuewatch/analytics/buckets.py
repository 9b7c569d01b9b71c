"""
Bucket Decomposition Engine
===========================

Splits closed queue events over a calendar-aligned bucket grid.

Given an event spanning ``[start, end)`` and a granularity (60-minute
hour-of-day buckets or 10-minute slots), one BucketContribution is produced
per bucket the event overlaps, on the local calendar day the bucket belongs
to. Each contribution holds exactly the part of ``[start, end)`` inside its
bucket, so for every event:

    sum(c.duration_ms for c in contributions) == end - start

Walk (interval-to-grid):
    cursor = start
    while cursor < end:
        bucket = local wall-clock floor of cursor to the grid
        piece  = [cursor, min(next bucket boundary, end))
        cursor = end of piece

    First bucket:  bucket_size - offset of start inside it
    Middle:        full bucket_size
    Last bucket:   offset of end inside it
    Single bucket: end - start

Queue episodes are expected to stay within one day. An event crossing
local midnight is split at the day boundary like any other bucket edge and
logged as anomalous; no time is dropped.

Event attributes (peak, turnover, estimate) are copied to every
contribution. Averaging them must happen once per distinct event, see
``aggregation.py``.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from pytz import BaseTzInfo

from queuewatch.analytics.timezone import local_to_ms, to_local
from queuewatch.errors import DecompositionError
from queuewatch.models.buckets import BucketContribution, Granularity
from queuewatch.models.queue_event import QueueEvent


logger = logging.getLogger(__name__)


def bucket_floor(local: datetime, granularity: Granularity) -> datetime:
    """Naive local start of the bucket containing ``local``."""
    size = granularity.bucket_minutes
    minute = 0 if size == 60 else (local.minute // size) * size
    return local.replace(minute=minute, second=0, microsecond=0, tzinfo=None)


def _split(
    start: int,
    end: int,
    granularity: Granularity,
    tz: BaseTzInfo,
) -> List[Tuple[datetime, int]]:
    """(bucket start, milliseconds inside bucket) for ``[start, end)``."""
    size_ms = granularity.bucket_minutes * 60_000
    pieces: List[Tuple[datetime, int]] = []

    cursor = start
    while cursor < end:
        slot = bucket_floor(to_local(cursor, tz), granularity)
        next_slot = slot + timedelta(minutes=granularity.bucket_minutes)
        # An ambiguous wall-clock boundary (DST end) has two instants
        candidates = [
            b for b in (local_to_ms(next_slot, tz, is_dst=True), local_to_ms(next_slot, tz, is_dst=False))
            if b > cursor
        ]
        boundary = min(candidates) if candidates else cursor + size_ms
        piece_end = min(boundary, end)
        pieces.append((slot, piece_end - cursor))
        cursor = piece_end

    if not pieces:
        # Zero-length event: one empty contribution in its start bucket
        pieces.append((bucket_floor(to_local(start, tz), granularity), 0))

    return pieces


def decompose_event(
    event: QueueEvent,
    granularity: Granularity,
    tz: BaseTzInfo,
) -> List[BucketContribution]:
    """
    Split one closed event into bucket contributions.

    Args:
        event: Closed queue event
        granularity: Bucket grid
        tz: Time zone defining the local calendar

    Returns:
        Contributions in time order

    Raises:
        DecompositionError: If the event is still open or ends before it
            starts.
    """
    if event.end_time is None:
        raise DecompositionError(f"Queue event {event.id} is still open")
    if event.end_time < event.start_time:
        raise DecompositionError(
            f"Queue event {event.id} ends before it starts "
            f"({event.end_time} < {event.start_time})"
        )

    pieces = _split(event.start_time, event.end_time, granularity, tz)

    days = {slot.date() for slot, _ in pieces}
    if len(days) > 1:
        logger.warning(
            f"Queue event {event.id} spans midnight "
            f"({min(days).isoformat()} -> {max(days).isoformat()}); "
            f"split at the day boundary"
        )

    last = len(pieces) - 1
    return [
        BucketContribution(
            event_id=event.id,
            granularity=granularity,
            day=slot.date(),
            slot_start=slot.time(),
            duration_ms=duration,
            is_event_start_bucket=(i == 0),
            is_event_end_bucket=(i == last),
            peak_count=event.peak_count,
            turnover_count=event.turnover_count,
            estimated_queue_length=event.estimated_queue_length,
        )
        for i, (slot, duration) in enumerate(pieces)
    ]


def decompose_into_buckets(
    events: Iterable[QueueEvent],
    granularity: Granularity,
    tz: Optional[BaseTzInfo] = None,
) -> List[BucketContribution]:
    """
    Decompose many events; open events are skipped.

    The in-progress episode is reported through the current-queue query,
    never through bucketed history.

    Args:
        events: Queue events (open ones are ignored)
        granularity: Bucket grid
        tz: Local time zone (UTC if None)

    Returns:
        All contributions, event by event
    """
    if tz is None:
        from pytz import utc
        tz = utc

    contributions: List[BucketContribution] = []
    for event in events:
        if event.is_open:
            logger.debug(f"Skipping open queue event {event.id} in decomposition")
            continue
        contributions.extend(decompose_event(event, granularity, tz))
    return contributions
