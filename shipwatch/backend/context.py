"""ShipWatch — Runtime Context.

One ShipWatchContext is built at startup and owns every component: the
store, the ingestion pipeline, the subscription controller, the projector
and the optional catalog poller. The web layer only talks to this object.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from backend.models import AreaOfInterest, FilterSelection
from backend.projector import ViewProjector
from backend.websocket_manager import envelope
from collectors.catalog_collector import CatalogCollector
from collectors.dialects import get_dialect
from collectors.subscription_controller import SubscriptionController, websocket_connector
from fusion_engine.ingestion import IngestionPipeline
from fusion_engine.vessel_store import VesselStore

logger = logging.getLogger("shipwatch.main")

RenderCallback = Callable[[dict], Awaitable[Any]]


async def _discard(message: dict):
    return None


class ShipWatchContext:
    """Owns and wires the streaming engine for one process."""

    def __init__(self, settings, render: Optional[RenderCallback] = None, connect=None):
        self.settings = settings
        self._render = render or _discard
        self.status_text = "Starting…"

        self.store = VesselStore()
        self.dialect = get_dialect(settings)
        self.pipeline = IngestionPipeline(self.store, self.dialect, on_status=self.set_status)
        self.controller = SubscriptionController(
            self.dialect,
            on_frame=self.pipeline.process_frame,
            on_status=self.set_status,
            connect=connect or websocket_connector(settings.open_timeout),
            backoff_base_ms=settings.backoff_base_ms,
            backoff_max_ms=settings.backoff_max_ms,
            threshold=settings.resubscribe_threshold,
        )
        self.projector = ViewProjector(self.store, interval=settings.render_interval)
        self.catalog = CatalogCollector(
            settings.catalog_url,
            token=settings.catalog_token,
            area_source=lambda: self.controller.requested_area,
            filter_source=lambda: self.projector.selection,
            interval=settings.catalog_interval,
        )
        self._tasks: list[asyncio.Task] = []

    @property
    def initial_area(self) -> AreaOfInterest:
        s = self.settings
        return AreaOfInterest(
            south=s.initial_south, west=s.initial_west,
            north=s.initial_north, east=s.initial_east,
        )

    def set_status(self, text: str):
        if text != self.status_text:
            logger.info("Status: %s", text)
        self.status_text = text

    # ── Lifecycle ──────────────────────────────────────
    async def start(self):
        self._tasks.append(asyncio.create_task(self._run_projector()))
        if self.catalog.enabled:
            self._tasks.append(asyncio.create_task(self._run_catalog()))
        if self.settings.autostart_stream:
            await self.controller.on_area_changed(self.initial_area)
        else:
            self.set_status("Idle (stream autostart disabled)")

    async def stop(self):
        await self.controller.stop()
        await self.projector.stop()
        await self.catalog.stop()
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()

    async def _run_projector(self):
        async for items in self.projector.start():
            await self._render(self.view_message(items))

    async def _run_catalog(self):
        async for items in self.catalog.start():
            self._ingest_catalog(items)

    def _ingest_catalog(self, items: list[dict]) -> int:
        stored = sum(1 for item in items if self.pipeline.ingest_fields(item) is not None)
        if items:
            self.set_status(f"Catalog: {stored} of {len(items)} vessels matched a watch category")
        return stored

    # ── UI operations ──────────────────────────────────
    def view_message(self, items: Optional[list[dict]] = None) -> dict:
        if items is None:
            items = self.projector.project()
        return envelope(
            "vessel_batch", items,
            status=self.status_text,
            state=self.controller.state.model_dump(mode="json"),
        )

    async def publish_view(self):
        await self._render(self.view_message())

    async def apply_filter(self, selection: FilterSelection):
        self.projector.set_filter(selection)
        await self.publish_view()

    async def change_area(self, area: AreaOfInterest) -> bool:
        return await self.controller.on_area_changed(area)

    async def reconnect(self) -> bool:
        return await self.controller.reconnect(fallback=self.initial_area)

    async def jump(self, port: str) -> AreaOfInterest:
        """Move the area of interest to a configured quick-jump port."""
        lat, lon, zoom = self.settings.quick_ports[port.lower()]
        area = AreaOfInterest.around(lat, lon, zoom)
        await self.change_area(area)
        await self._render(envelope("view", {"port": port.lower(), "center": [lat, lon], "zoom": zoom}))
        if self.catalog.enabled:
            try:
                self._ingest_catalog(await self.catalog.collect())
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("Catalog refresh after jump failed: %s", e)
        return area

    async def handle_command(self, message: dict) -> dict:
        """Apply one control message from a rendering client; returns the reply."""
        action = message.get("action") if isinstance(message, dict) else None
        try:
            if action == "filter":
                selection = FilterSelection(
                    wanted=message.get("wanted", self.projector.selection.wanted),
                    query=message.get("query") or "",
                )
                await self.apply_filter(selection)
                return envelope("ack", {"action": action})
            if action == "area":
                area = AreaOfInterest.from_bbox(message["bbox"])
                moved = await self.change_area(area)
                return envelope("ack", {"action": action, "resubscribed": moved})
            if action == "reconnect":
                ok = await self.reconnect()
                return envelope("ack", {"action": action, "subscribed": ok})
            if action == "jump":
                area = await self.jump(str(message["port"]))
                return envelope("ack", {"action": action, "bbox": area.as_bbox()})
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            return envelope("error", {"action": action, "error": str(e)})
        return envelope("error", {"action": action, "error": f"Unknown action: {action!r}"})

    def status_report(self) -> dict:
        subscribed = self.controller.subscribed_area
        requested = self.controller.requested_area
        return {
            "status": self.status_text,
            "dialect": self.dialect.name,
            "state": self.controller.state.model_dump(mode="json"),
            "next_delay_ms": self.controller.next_delay_ms,
            "reconnects": self.controller.reconnects,
            "subscribed_area": subscribed.as_bbox() if subscribed else None,
            "requested_area": requested.as_bbox() if requested else None,
            "pipeline": self.pipeline.stats.model_dump(),
            "vessels": len(self.store),
            "categories": self.store.counts_by_category(),
            "filter": self.projector.selection.model_dump(mode="json"),
        }
