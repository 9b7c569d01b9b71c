"""
Monitor Registry
================

One independent QueueMonitorGraph per location.

Monitors share no mutable state; the registry only creates them lazily
and hands out the right one for a location id.
"""

import logging
import threading
from typing import Callable, Dict, Iterator

from queuewatch.agent.graph import QueueMonitorGraph


logger = logging.getLogger(__name__)


class MonitorRegistry:
    """
    Location id -> QueueMonitorGraph.

    Example:
        registry = MonitorRegistry(
            lambda location_id: QueueMonitorGraph(location_id, store, sample_log=store)
        )
        registry.get("front").ingest(ts, count)
    """

    def __init__(self, factory: Callable[[str], QueueMonitorGraph]) -> None:
        self._factory = factory
        self._monitors: Dict[str, QueueMonitorGraph] = {}
        self._lock = threading.Lock()

    def get(self, location_id: str) -> QueueMonitorGraph:
        """Return the monitor for a location, creating it on first use."""
        with self._lock:
            monitor = self._monitors.get(location_id)
            if monitor is None:
                monitor = self._factory(location_id)
                self._monitors[location_id] = monitor
                logger.info(f"Registered monitor for location {location_id}")
            return monitor

    def __contains__(self, location_id: str) -> bool:
        return location_id in self._monitors

    def __iter__(self) -> Iterator[QueueMonitorGraph]:
        return iter(list(self._monitors.values()))

    def __len__(self) -> int:
        return len(self._monitors)
