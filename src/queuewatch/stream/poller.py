"""
Occupancy Poller
================

Polls the occupancy API on a fixed interval and pushes timestamped samples
into a SampleBuffer.

Design Rules:
    - One request per interval; the sample is stamped with the local clock
      at the time the response was decoded
    - Failures (HTTP, JSON, decode, negative count) are logged, counted and
      skipped; the loop never dies on a bad poll
    - After ``failures_before_backoff`` consecutive failures the next wait
      is extended by ``failure_backoff_seconds``
    - ``stop()`` ends the loop at the next wait
"""

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from queuewatch.errors import SourceDecodeError
from queuewatch.models.sample import Sample
from queuewatch.stream.buffer import SampleBuffer
from queuewatch.stream.client import OccupancyClient


logger = logging.getLogger(__name__)


class OccupancyPollerMetrics:
    """Metrics for OccupancyPoller observability."""

    __slots__ = (
        "polls",
        "samples_emitted",
        "failures",
        "consecutive_failures",
        "backoffs",
        "last_count",
        "last_timestamp",
    )

    def __init__(self) -> None:
        self.polls: int = 0
        self.samples_emitted: int = 0
        self.failures: int = 0
        self.consecutive_failures: int = 0
        self.backoffs: int = 0
        self.last_count: int = -1
        self.last_timestamp: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "polls": self.polls,
            "samples_emitted": self.samples_emitted,
            "failures": self.failures,
            "consecutive_failures": self.consecutive_failures,
            "backoffs": self.backoffs,
            "last_count": self.last_count,
            "last_timestamp": self.last_timestamp,
        }


class OccupancyPoller:
    """
    Periodic occupancy poller.

    Example:
        buffer = SampleBuffer(maxsize=100)
        poller = OccupancyPoller(client, buffer, poll_interval_seconds=10)

        task = asyncio.create_task(poller.run())
        ...
        await poller.stop()
        await task
    """

    def __init__(
        self,
        client: OccupancyClient,
        buffer: SampleBuffer,
        poll_interval_seconds: float = 10.0,
        failure_backoff_seconds: float = 30.0,
        failures_before_backoff: int = 3,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize poller.

        Args:
            client: Occupancy API client
            buffer: Buffer receiving samples
            poll_interval_seconds: Delay between polls
            failure_backoff_seconds: Extra delay once failures pile up
            failures_before_backoff: Consecutive failures before backing off
            clock: Sample timestamp source (seconds)
        """
        self.client = client
        self.buffer = buffer
        self.poll_interval_seconds = poll_interval_seconds
        self.failure_backoff_seconds = failure_backoff_seconds
        self.failures_before_backoff = failures_before_backoff
        self._clock = clock

        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()

        self.metrics = OccupancyPollerMetrics()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def healthy(self) -> bool:
        """At least one poll succeeded and the last one did not fail."""
        return self.metrics.samples_emitted > 0 and self.metrics.consecutive_failures == 0

    async def poll_once(self) -> Optional[Sample]:
        """
        Run one poll and push the resulting sample.

        Returns:
            The sample pushed, or None if the poll failed.
        """
        self.metrics.polls += 1
        try:
            count = await self.client.fetch_count()
            sample = Sample(timestamp=int(self._clock() * 1000), count=count)
        except (httpx.HTTPError, SourceDecodeError, ValueError) as e:
            self.metrics.failures += 1
            self.metrics.consecutive_failures += 1
            logger.error(
                f"Occupancy poll failed ({self.metrics.consecutive_failures} in a row): {e}"
            )
            return None

        if self.metrics.consecutive_failures:
            logger.info(
                f"Occupancy source recovered after {self.metrics.consecutive_failures} failures"
            )
        self.metrics.consecutive_failures = 0

        await self.buffer.put(sample)
        self.metrics.samples_emitted += 1
        self.metrics.last_count = sample.count
        self.metrics.last_timestamp = sample.timestamp
        return sample

    def _next_delay(self) -> float:
        delay = self.poll_interval_seconds
        if self.metrics.consecutive_failures >= self.failures_before_backoff:
            self.metrics.backoffs += 1
            delay += self.failure_backoff_seconds
            logger.warning(f"Backing off: next poll in {delay:.0f}s")
        return delay

    async def run(self) -> None:
        """
        Poll until stopped.

        Call stop() to terminate gracefully.
        """
        self._running = True
        self._stop_event.clear()
        logger.info(
            f"OccupancyPoller starting: {self.client.url} "
            f"every {self.poll_interval_seconds}s"
        )

        while self._running:
            await self.poll_once()

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._next_delay())
                break
            except asyncio.TimeoutError:
                pass

        self._running = False
        logger.info("OccupancyPoller stopped")

    async def stop(self) -> None:
        """Signal the run loop to exit."""
        logger.info("OccupancyPoller stopping...")
        self._running = False
        self._stop_event.set()
