"""
Store Contracts
===============

Operations the detector and the reporting layer need from persistence.

The queue detector only ever calls the EventStore half; reporting reads
both halves. Any implementation must make each write durable before the
call returns (or when the enclosing ``transaction()`` ends) and raise
``StoreError`` when it cannot. Updating or closing an event that no longer
exists raises ``EventNotFoundError``.
"""

from typing import ContextManager, List, Optional, Protocol

from queuewatch.models.queue_event import QueueEvent
from queuewatch.models.sample import Sample, SampleRecord, StatusLabel


class EventStore(Protocol):
    """Durable append/update store for queue events."""

    def transaction(self) -> ContextManager[None]: ...

    def create_event(
        self,
        location_id: str,
        start_time: int,
        peak_count: int,
        turnover_count: int = 1,
        estimated_queue_length: int = 0,
    ) -> int: ...

    def update_event(
        self,
        event_id: int,
        turnover_count: int,
        peak_count: int,
        estimated_queue_length: int,
    ) -> None: ...

    def close_event(self, event_id: int, end_time: int) -> None: ...

    def get_active_event(self, location_id: str) -> Optional[QueueEvent]: ...

    def list_open_events(self, location_id: str) -> List[QueueEvent]: ...

    def list_closed_events(
        self,
        location_id: str,
        since: Optional[int] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[QueueEvent]: ...

    def delete_event(self, event_id: int) -> None: ...

    def delete_events(self, location_id: str) -> int: ...


class SampleLog(Protocol):
    """Append-only log of accepted occupancy samples."""

    def record_sample(self, location_id: str, sample: Sample, status: StatusLabel) -> None: ...

    def latest_sample(
        self,
        location_id: str,
        before: Optional[int] = None,
    ) -> Optional[SampleRecord]: ...

    def recent_samples(self, location_id: str, limit: int) -> List[SampleRecord]: ...

    def list_samples(
        self,
        location_id: str,
        since: Optional[int] = None,
        until: Optional[int] = None,
    ) -> List[SampleRecord]: ...

    def count_samples(self, location_id: str) -> int: ...
