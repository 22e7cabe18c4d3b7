"""ShipWatch — Live Stream Subscription Controller.

Owns the upstream WebSocket and the area it is subscribed to.

    disconnected ──open()──▶ connecting ──subscribe sent──▶ subscribed
         ▲                      │  ▲                           │
         │                      ▼  │ timer                     │ drop
       stop()                 backoff(delay) ◀─────────────────┘

Every failure lands in backoff; the reconnect delay doubles per consecutive
failure up to a ceiling and resets to the base delay once a subscription
succeeds or a manual reconnect is requested. The controller never gives up.

Each connection is tagged with a generation number. Opening a new
connection bumps the generation, so frames still arriving on an abandoned
socket are ignored.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import WebSocketException

from backend.models import AreaOfInterest, SubscriptionPhase, SubscriptionState
from collectors.dialects import Dialect

logger = logging.getLogger("shipwatch.stream")

TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)

FrameCallback = Callable[[Any], Any]
StatusCallback = Callable[[str], None]
Connector = Callable[[str], Awaitable[Any]]


def websocket_connector(open_timeout: float = 10.0) -> Connector:
    """Default connector: a websockets client connection with keepalive pings."""
    def connect(url: str):
        return websockets.connect(
            url,
            open_timeout=open_timeout,
            ping_interval=30,
            ping_timeout=10,
        )
    return connect


async def _close_quietly(ws):
    try:
        await ws.close()
    except TRANSPORT_ERRORS as e:
        logger.debug("[stream] Error while closing socket: %s", e)


class SubscriptionController:
    """Connects, subscribes and keeps the upstream stream alive."""

    def __init__(self, dialect: Dialect, on_frame: FrameCallback,
                 on_status: Optional[StatusCallback] = None,
                 connect: Optional[Connector] = None,
                 backoff_base_ms: int = 1000,
                 backoff_max_ms: int = 30000,
                 threshold: float = 0.2):
        self.dialect = dialect
        self._on_frame = on_frame
        self._on_status = on_status
        self._connect = connect or websocket_connector()

        self.backoff_base_ms = backoff_base_ms
        self.backoff_max_ms = backoff_max_ms
        self.threshold = threshold

        self._state = SubscriptionState()
        self._delay_ms = backoff_base_ms
        self._generation = 0
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._retry: Optional[asyncio.Task] = None
        self._closing: set[asyncio.Task] = set()

        self._subscribed_area: Optional[AreaOfInterest] = None
        self._requested_area: Optional[AreaOfInterest] = None
        self.reconnects = 0

    # ── Observable state ───────────────────────────────
    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def subscribed_area(self) -> Optional[AreaOfInterest]:
        """Area of the most recent subscription attempt."""
        return self._subscribed_area

    @property
    def requested_area(self) -> Optional[AreaOfInterest]:
        """Latest area reported by the UI, subscribed or not."""
        return self._requested_area

    @property
    def next_delay_ms(self) -> int:
        return self._delay_ms

    def _set_state(self, phase: SubscriptionPhase, delay_ms: Optional[int] = None,
                   status: Optional[str] = None):
        self._state = SubscriptionState(phase=phase, delay_ms=delay_ms)
        if delay_ms is None:
            logger.info("[stream] %s", phase.value)
        else:
            logger.info("[stream] %s (%d ms)", phase.value, delay_ms)
        if status:
            self._status(status)

    def _status(self, text: str):
        if self._on_status:
            self._on_status(text)

    # ── Transitions ────────────────────────────────────
    async def open(self, area: Optional[AreaOfInterest] = None) -> bool:
        """Replace any live connection with a fresh subscription to `area`.

        Returns True once the subscribe message has been sent. Failures are
        routed to `on_disconnect()` and return False.
        """
        area = area or self._requested_area
        if area is None:
            raise ValueError("No area of interest to subscribe to")

        self._requested_area = area
        self._subscribed_area = area
        self._cancel_retry()
        self._generation += 1
        generation = self._generation
        await self._invalidate()

        self._set_state(SubscriptionPhase.CONNECTING,
                        status=f"Connecting to {self.dialect.name}…")
        try:
            ws = await self._connect(self.dialect.url)
        except TRANSPORT_ERRORS as e:
            self._fail(generation, f"Connection error: {str(e) or type(e).__name__}")
            return False

        if generation != self._generation:
            await _close_quietly(ws)
            return False

        self._ws = ws
        try:
            await ws.send(json.dumps(self.dialect.subscribe_payload(area)))
        except TRANSPORT_ERRORS as e:
            if self._ws is ws:
                self._ws = None
            await _close_quietly(ws)
            self._fail(generation, f"Subscribe failed: {str(e) or type(e).__name__}")
            return False

        if generation != self._generation:
            await _close_quietly(ws)
            return False

        self._delay_ms = self.backoff_base_ms
        self._set_state(SubscriptionPhase.SUBSCRIBED, status="Connected (subscription sent)")
        logger.info("[stream] Subscribed to %s via %s", area.as_bbox(), self.dialect.name)
        self._reader = asyncio.create_task(self._read(ws, generation))
        return True

    def on_disconnect(self, reason: Optional[str] = None):
        """Drop the current connection and schedule a reconnect after backoff."""
        self._cancel_retry()
        self._generation += 1

        reader, self._reader = self._reader, None
        if reader and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
        ws, self._ws = self._ws, None
        if ws is not None:
            task = asyncio.create_task(_close_quietly(ws))
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)

        delay = self._delay_ms
        if reason:
            logger.warning("[stream] Disconnected: %s", reason)
        self._set_state(SubscriptionPhase.BACKOFF, delay_ms=delay,
                        status=f"Disconnected. Retrying in {delay / 1000:g}s…")
        self._retry = asyncio.create_task(self._retry_after(delay))
        self._delay_ms = min(delay * 2, self.backoff_max_ms)

    async def on_area_changed(self, area: AreaOfInterest) -> bool:
        """Resubscribe if `area` moved past the threshold on any bound."""
        self._requested_area = area
        last = self._subscribed_area
        if last is not None and not area.moved_beyond(last, self.threshold):
            return False
        logger.info("[stream] Area changed to %s, resubscribing", area.as_bbox())
        await self.open(area)
        return True

    async def reconnect(self, fallback: Optional[AreaOfInterest] = None) -> bool:
        """Manual reconnect: skip any pending backoff and reset the delay.

        Resubscribes the latest requested area, or `fallback` when no area
        has been requested yet.
        """
        logger.info("[stream] Manual reconnect requested")
        self._delay_ms = self.backoff_base_ms
        return await self.open(self._requested_area or fallback)

    async def stop(self):
        self._cancel_retry()
        self._generation += 1
        await self._invalidate()
        if self._closing:
            await asyncio.gather(*self._closing)
        self._set_state(SubscriptionPhase.DISCONNECTED, status="Stopped")

    # ── Internals ──────────────────────────────────────
    def _fail(self, generation: int, message: str):
        if generation != self._generation:
            return
        self._status(message)
        self.on_disconnect(message)

    async def _invalidate(self):
        """Abandon the current socket and its reader."""
        reader, self._reader = self._reader, None
        if reader and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
        ws, self._ws = self._ws, None
        if ws is not None:
            await _close_quietly(ws)

    def _cancel_retry(self):
        retry, self._retry = self._retry, None
        if retry and not retry.done() and retry is not asyncio.current_task():
            retry.cancel()

    async def _retry_after(self, delay_ms: int):
        await asyncio.sleep(delay_ms / 1000)
        self._retry = None
        self.reconnects += 1
        await self.open(self._requested_area)

    async def _read(self, ws, generation: int):
        reason = "closed by upstream"
        try:
            async for raw in ws:
                if generation != self._generation:
                    return
                try:
                    self._on_frame(raw)
                except Exception:
                    logger.exception("[stream] Frame handler failed")
        except TRANSPORT_ERRORS as e:
            reason = str(e) or type(e).__name__

        if generation == self._generation:
            self._ws = None
            await _close_quietly(ws)
            self._fail(generation, f"Disconnected ({reason})")
