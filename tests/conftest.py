"""
Test Configuration
==================

Pytest fixtures and helpers for queuewatch.
"""

from datetime import datetime, timezone

import pytest

LOCATION = "test-location"
STEP_MS = 10_000


def ms(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> int:
    """UTC wall-clock time as epoch milliseconds."""
    dt = datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


T0 = ms(2025, 11, 10, 12, 0)


@pytest.fixture
def store():
    """Provide an open in-memory SQLiteStore."""
    from queuewatch.store import SQLiteStore

    with SQLiteStore(":memory:") as s:
        yield s


@pytest.fixture
def thresholds():
    """CAPACITY=6, EMPTY=3 thresholds used by the reference sequence."""
    from queuewatch.agent.transitions import DetectionThresholds

    return DetectionThresholds(capacity=6, empty=3)


@pytest.fixture
def monitor(store, thresholds):
    """Provide a QueueMonitorGraph writing events and samples to the store."""
    from queuewatch.agent import QueueMonitorGraph

    return QueueMonitorGraph(LOCATION, store, thresholds=thresholds, sample_log=store)


@pytest.fixture
def utc():
    import pytz

    return pytz.utc


def feed(monitor, counts, start: int = T0, step: int = STEP_MS):
    """Ingest counts at a fixed interval; returns the transition results."""
    return [monitor.ingest(start + i * step, c) for i, c in enumerate(counts)]
