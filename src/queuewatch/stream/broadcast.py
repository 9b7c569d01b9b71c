"""
Status Broadcaster
==================

Fans status-change notifications out to live subscribers (the
``/ws/status`` websocket clients).

Each subscriber owns a bounded asyncio queue. A slow subscriber loses its
oldest pending messages; it never blocks the monitor or other subscribers.

Subscribing and publishing happen on the event loop thread. The monitor
hook ``on_status_change`` may be called from a worker thread; it hands the
message to the bound loop with ``call_soon_threadsafe``.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from queuewatch.models.sample import Sample, StatusLabel


logger = logging.getLogger(__name__)


class StatusBroadcaster:
    """
    In-process pub/sub for status messages.

    Example:
        broadcaster = StatusBroadcaster()
        queue = broadcaster.subscribe()
        broadcaster.publish({"type": "status", "status": "VACANT"})
        message = await queue.get()
    """

    def __init__(
        self,
        max_pending: int = 100,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.max_pending = max_pending
        self._loop = loop
        self._subscribers: List[asyncio.Queue] = []
        self.published: int = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_pending)
        self._subscribers.append(queue)
        logger.info(f"Status subscriber added ({self.subscriber_count} total)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
            logger.info(f"Status subscriber removed ({self.subscriber_count} total)")

    def publish(self, message: Dict[str, Any]) -> int:
        """
        Deliver a message to every subscriber.

        Returns:
            Number of subscribers the message was queued for.
        """
        self.published += 1
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
                logger.warning("Status subscriber lagging; dropped oldest message")
            queue.put_nowait(message)
        return len(self._subscribers)

    def on_status_change(self, location_id: str, status: StatusLabel, sample: Sample) -> None:
        """Monitor hook: publish a status message from any thread."""
        message = {
            "type": "status",
            "location_id": location_id,
            "status": status.value,
            "count": sample.count,
            "timestamp": sample.timestamp,
        }
        if self._loop is None or _running_loop() is self._loop:
            self.publish(message)
        else:
            self._loop.call_soon_threadsafe(self.publish, message)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
