"""Shared fixtures: fake upstream sockets, settings and a wired context."""
import asyncio
import json

import pytest

from backend.config import Settings
from backend.models import AreaOfInterest


class FakeSocket:
    """Stand-in for a websockets client connection.

    Frames pushed with `feed()` are yielded by async iteration; `close()`
    or `end()` terminates the iteration like an upstream close would.
    """

    def __init__(self, frames=()):
        self.sent = []
        self.closed = False
        self._queue = asyncio.Queue()
        for frame in frames:
            self._queue.put_nowait(frame)

    def feed(self, frame):
        self._queue.put_nowait(frame)

    def end(self):
        self._queue.put_nowait(None)

    async def send(self, data):
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(json.loads(data))

    async def close(self):
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self._queue.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class FakeConnector:
    """Connector returning queued sockets, or raising queued errors."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.urls = []
        self.sockets = []

    async def __call__(self, url):
        self.urls.append(url)
        outcome = self.outcomes.pop(0) if self.outcomes else FakeSocket()
        if isinstance(outcome, BaseException):
            raise outcome
        self.sockets.append(outcome)
        return outcome


@pytest.fixture
def fake_socket():
    """Factory for FakeSocket instances (must be called inside a running loop)."""
    return FakeSocket


@pytest.fixture
def fake_connector():
    return FakeConnector


@pytest.fixture
def settings():
    return Settings(
        dialect="relay",
        relay_url="ws://relay.test/ws",
        autostart_stream=False,
        catalog_url=None,
        render_interval=60,
    )


@pytest.fixture
def area():
    return AreaOfInterest(south=40, west=10, north=42, east=12)
