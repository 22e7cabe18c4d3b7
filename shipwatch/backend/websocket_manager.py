"""ShipWatch — WebSocket Connection Manager (rendering clients)."""

import json
import logging
from typing import Any, Optional
from fastapi import WebSocket

from backend.models import WebSocketMessage

logger = logging.getLogger("shipwatch.ws")


def envelope(action: str, data: Any, **extra) -> dict:
    """JSON-ready message envelope sent to rendering clients."""
    message = WebSocketMessage(action=action, data=data).model_dump(mode="json")
    message.update(extra)
    return message


def _fingerprint(message: dict) -> str:
    """Message content without its timestamp, for change detection."""
    return json.dumps(
        {k: v for k, v in message.items() if k != "timestamp"},
        sort_keys=True, default=str,
    )


class ConnectionManager:
    """Fans view updates out to rendering clients.

    `render()` is the projector's sink: a view identical to the previous one
    (same vessels, status and subscription state) is not sent again. A newly
    connected client receives its own `initial_state`, so the next view after
    a connect is always sent.
    """

    def __init__(self):
        self._connections: list[WebSocket] = []
        self._last_view: Optional[str] = None
        self.views_sent = 0
        self.views_skipped = 0

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self._connections.append(websocket)
        self._last_view = None
        logger.info("Rendering client connected (%d total)", len(self._connections))

    def disconnect(self, websocket: WebSocket):
        if websocket in self._connections:
            self._connections.remove(websocket)
            logger.info("Rendering client disconnected (%d remaining)", len(self._connections))

    async def render(self, message: dict) -> bool:
        """Broadcast `message` unless it repeats the last one; True if sent."""
        if not self._connections:
            self._last_view = None
            return False

        fingerprint = _fingerprint(message)
        if fingerprint == self._last_view:
            self.views_skipped += 1
            return False

        self._last_view = fingerprint
        await self.broadcast(message)
        self.views_sent += 1
        return True

    async def broadcast(self, message: dict):
        """Send a message to every client, dropping those whose send fails."""
        payload = json.dumps(message, default=str)
        for ws in list(self._connections):
            if not await self._send(ws, payload):
                self.disconnect(ws)

    async def send_to(self, websocket: WebSocket, message: dict):
        """Send a message to a specific client."""
        if not await self._send(websocket, json.dumps(message, default=str)):
            self.disconnect(websocket)

    @staticmethod
    async def _send(websocket: WebSocket, payload: str) -> bool:
        try:
            await websocket.send_text(payload)
        except Exception as e:
            logger.debug("Dropping client after send failure: %s", e)
            return False
        return True

    @property
    def connection_count(self) -> int:
        return len(self._connections)
