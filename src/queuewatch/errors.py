"""
Errors
======

Exception hierarchy shared across the package.

Ingestion-side problems (malformed samples) are logged and dropped where
they occur and never raise. Everything below is raised to the caller.
"""


class QueueWatchError(Exception):
    """Base class for all queuewatch errors."""


class StoreError(QueueWatchError):
    """The event store or sample log could not complete an operation."""


class EventNotFoundError(StoreError):
    """An update or close named a queue event that is not open in the store."""


class DecompositionError(QueueWatchError):
    """An event cannot be split into buckets (e.g. end before start)."""


class ReportingError(QueueWatchError):
    """A reporting query received invalid parameters."""


class SourceDecodeError(QueueWatchError):
    """No occupancy value could be decoded from an upstream payload."""
