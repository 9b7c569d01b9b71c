"""
Sample Buffer
=============

Bounded asyncio queue between the poller and the processing loop.

When full, the oldest sample is dropped so the monitor always works on the
freshest readings after a stall.
"""

import asyncio
import logging
from typing import Optional

from queuewatch.models.sample import Sample


logger = logging.getLogger(__name__)


class SampleBuffer:
    """
    Async bounded queue of samples with a drop-oldest policy.

    Example:
        buffer = SampleBuffer(maxsize=100)
        await buffer.put(sample)            # producer
        sample = await buffer.get(1.0)      # consumer, None on timeout
    """

    def __init__(self, maxsize: int = 100) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[Sample] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def size(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        """Samples dropped due to overflow."""
        return self._dropped_count

    async def put(self, sample: Sample) -> bool:
        """
        Add a sample, dropping the oldest if the buffer is full.

        Returns:
            False if a sample had to be dropped to make room.
        """
        self._total_put += 1
        dropped = False

        if self._queue.full():
            try:
                stale = self._queue.get_nowait()
                self._dropped_count += 1
                dropped = True
                logger.warning(
                    f"Sample buffer full, dropped {stale}. "
                    f"Total dropped: {self._dropped_count}"
                )
            except asyncio.QueueEmpty:
                pass

        self._queue.put_nowait(sample)
        return not dropped

    async def get(self, timeout: Optional[float] = None) -> Optional[Sample]:
        """
        Next sample in arrival order.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next sample, or None if the timeout expired.
        """
        try:
            if timeout is not None:
                return await asyncio.wait_for(self._queue.get(), timeout=timeout)
            return await self._queue.get()
        except asyncio.TimeoutError:
            return None

    def get_nowait(self) -> Optional[Sample]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def metrics(self) -> dict:
        """Buffer metrics for observability."""
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }
