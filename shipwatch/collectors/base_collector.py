"""ShipWatch — Abstract Periodic Collector."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import httpx

logger = logging.getLogger("shipwatch.collector")


class BaseCollector(ABC):
    """Base class for work that runs on a fixed cadence.

    `start()` is an async generator yielding one batch per cycle; a failing
    cycle is logged and yields an empty batch so the loop keeps going.
    """

    def __init__(self, name: str, interval: float = 60):
        self.name = name
        self.interval = interval
        self._running = False
        self._http_client: Optional[httpx.AsyncClient] = None
        self._last_fetch: Optional[datetime] = None

    async def start(self):
        """Start the collector loop."""
        self._running = True
        logger.info("[%s] Collector started (interval=%.1fs)", self.name, self.interval)

        while self._running:
            try:
                items = await self.collect()
                self._last_fetch = datetime.now(timezone.utc)
                logger.debug("[%s] Collected %d items", self.name, len(items))
                yield items
            except Exception as e:
                logger.error("[%s] Collection error: %s", self.name, e)
                yield []

            await asyncio.sleep(self.interval)

    async def stop(self):
        self._running = False
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.info("[%s] Collector stopped", self.name)

    @property
    def last_fetch(self) -> Optional[datetime]:
        return self._last_fetch

    @abstractmethod
    async def collect(self) -> list[dict]:
        """Produce one batch of items for this cycle."""
        ...

    async def fetch_json(self, url: str, params: dict = None, headers: dict = None):
        """Helper to fetch JSON from a URL."""
        if not self._http_client:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        resp = await self._http_client.get(url, params=params, headers=headers)
        resp.raise_for_status()
        return resp.json()
