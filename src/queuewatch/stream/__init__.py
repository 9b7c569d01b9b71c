"""
Stream Module
=============

Occupancy ingestion and live status fan-out.

    - decode_occupancy: Count extraction from the API payload
    - OccupancyClient: httpx client for the occupancy API
    - SampleBuffer: Bounded async queue (drops oldest on overflow)
    - OccupancyPoller: Periodic poller feeding the buffer
    - StatusBroadcaster: Status-change pub/sub for websocket clients

Example:
    buffer = SampleBuffer(maxsize=100)
    client = OccupancyClient(settings.source.url, settings.source.camera_id)
    poller = OccupancyPoller(client, buffer, poll_interval_seconds=10)

    task = asyncio.create_task(poller.run())
    while True:
        sample = await buffer.get()
        monitor.ingest(sample.timestamp, sample.count)
"""

from queuewatch.stream.broadcast import StatusBroadcaster
from queuewatch.stream.buffer import SampleBuffer
from queuewatch.stream.client import OccupancyClient
from queuewatch.stream.decoder import decode_occupancy
from queuewatch.stream.poller import OccupancyPoller, OccupancyPollerMetrics


__all__ = [
    "decode_occupancy",
    "OccupancyClient",
    "SampleBuffer",
    "OccupancyPoller",
    "OccupancyPollerMetrics",
    "StatusBroadcaster",
]
