"""
Occupancy Client
================

Async HTTP client for the occupancy API.

Example:
    async with OccupancyClient(settings.source.url, settings.source.camera_id) as client:
        count = await client.fetch_count()

Every request carries a ``_`` query parameter with the current time in
milliseconds so intermediate caches never serve a stale count.
"""

import logging
import time
from typing import Any, Callable, Optional

import httpx

from queuewatch.stream.decoder import decode_occupancy


logger = logging.getLogger(__name__)


class OccupancyClient:
    """
    Reads the current occupancy of one camera.

    Attributes:
        url: API endpoint (may already carry query parameters)
        camera_id: Camera record to decode
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        url: str,
        camera_id: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize occupancy client.

        Args:
            url: API endpoint
            camera_id: Camera record to decode
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests use MockTransport)
            clock: Source of the cache-busting timestamp
        """
        self.url = url
        self.camera_id = camera_id
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
            logger.info(f"OccupancyClient opened: {self.url}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("OccupancyClient closed")

    async def fetch_payload(self) -> Any:
        """
        Fetch the raw JSON body.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses.
            ValueError: If the body is not JSON.
        """
        if self._client is None:
            await self.open()

        # Merge so the endpoint's own query (the group id) survives
        url = httpx.URL(self.url).copy_merge_params({"_": int(self._clock() * 1000)})
        response = await self._client.get(url)
        response.raise_for_status()
        return response.json()

    async def fetch_count(self) -> int:
        """
        Fetch and decode the current count.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses.
            SourceDecodeError: If the payload holds no usable count.
        """
        payload = await self.fetch_payload()
        count = decode_occupancy(payload, self.camera_id)
        logger.debug(f"Occupancy for camera {self.camera_id}: {count}")
        return count

    async def __aenter__(self) -> "OccupancyClient":
        await self.open()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()
