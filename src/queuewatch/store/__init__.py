"""
Store Module
============

Persistence for queue events and the raw sample log.
"""

from queuewatch.store.base import EventStore, SampleLog
from queuewatch.store.sqlite import SQLiteStore

__all__ = [
    "EventStore",
    "SampleLog",
    "SQLiteStore",
]
