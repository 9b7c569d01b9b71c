#!/usr/bin/env python3
"""
Occupancy Polling Smoke Test
============================

Polls the live occupancy API for a while and reports what came back.
Nothing is written to the database.

Usage:
    python scripts/poll_smoke.py --duration 60
    python scripts/poll_smoke.py --interval 5 --camera <camera id>
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from queuewatch.config import settings
from queuewatch.signals import classify
from queuewatch.stream import OccupancyClient, OccupancyPoller, SampleBuffer


logger = logging.getLogger("poll_smoke")


async def run_smoke(url: str, camera_id: str, duration: int, interval: float) -> dict:
    """
    Poll for ``duration`` seconds and log every sample.

    Returns:
        Final poller metrics
    """
    logger.info("=" * 60)
    logger.info(f"Source: {url}")
    logger.info(f"Camera: {camera_id}")
    logger.info(f"Duration: {duration}s, interval: {interval}s")
    logger.info("=" * 60)

    buffer = SampleBuffer(maxsize=settings.source.max_queue_size)
    async with OccupancyClient(url, camera_id, timeout=settings.source.request_timeout_seconds) as client:
        poller = OccupancyPoller(client, buffer, poll_interval_seconds=interval)
        task = asyncio.create_task(poller.run())

        deadline = time.time() + duration
        try:
            while time.time() < deadline:
                sample = await buffer.get(timeout=1.0)
                if sample is not None:
                    logger.info(f"  {sample} -> {classify(sample.count).value}")
        finally:
            await poller.stop()
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                task.cancel()

    metrics = poller.metrics.to_dict()
    logger.info("=" * 60)
    logger.info(f"Polls: {metrics['polls']}, samples: {metrics['samples_emitted']}, "
                f"failures: {metrics['failures']}")
    if metrics["samples_emitted"] > 0:
        logger.info("✅ Occupancy source reachable")
    else:
        logger.error("❌ No samples received")
    return metrics


def main() -> int:
    parser = argparse.ArgumentParser(description="Poll the occupancy API and print samples")
    parser.add_argument("--url", type=str, default=settings.source.url)
    parser.add_argument("--camera", type=str, default=settings.source.camera_id)
    parser.add_argument("--duration", type=int, default=60, help="Seconds to run (default: 60)")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.source.poll_interval_seconds,
        help="Seconds between polls",
    )
    args = parser.parse_args()

    metrics = asyncio.run(run_smoke(args.url, args.camera, args.duration, args.interval))
    return 0 if metrics["samples_emitted"] > 0 else 1


if __name__ == "__main__":
    sys.exit(main())
