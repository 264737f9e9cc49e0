from __future__ import annotations

import asyncio
import json
import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from videosync.core.config import Settings
from videosync.main import create_app
from videosync.state.room_manager import ConnectionRegistry
from videosync.state.stats import RelayStats
from videosync.ws.connection import Connection
from videosync.ws.handler import ConnectionHandler
from videosync.ws.router import MessageRouter


class FakeWebSocket:
    """Just enough of Starlette's WebSocket for the relay to drive."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed: tuple[int, str | None] | None = None
        self.accepted = False
        self.client_state = WebSocketState.CONNECTING
        self.inbox: asyncio.Queue = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True
        self.client_state = WebSocketState.CONNECTED

    async def send_text(self, data: str) -> None:
        if self.closed is not None:
            raise RuntimeError("send after close")
        self.sent.append(json.loads(data))

    async def receive(self) -> dict:
        message = await self.inbox.get()
        if message["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return message

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)

    def feed(self, payload) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self.inbox.put_nowait({"type": "websocket.receive", "text": text})

    def hang_up(self, code: int = 1000) -> None:
        self.inbox.put_nowait({"type": "websocket.disconnect", "code": code})

    def drop(self) -> None:
        """The server saw the transport die; no disconnect frame reached the reader."""
        self.client_state = WebSocketState.DISCONNECTED

    def of_type(self, type_: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == type_]

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        port=8080,
        heartbeat_interval_s=3600,
        room_sweep_interval_s=3600,
        empty_room_grace_s=300,
        shutdown_timeout_s=0.5,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def stats() -> RelayStats:
    return RelayStats()


@pytest.fixture
def registry(stats) -> ConnectionRegistry:
    return ConnectionRegistry(stats)


@pytest.fixture
def handler(registry, stats) -> ConnectionHandler:
    return ConnectionHandler(registry, MessageRouter(registry), stats)


@pytest.fixture
async def make_connection():
    made: list[Connection] = []

    def _make(client_id: str, room_id: str = "movie1") -> Connection:
        conn = Connection(FakeWebSocket(), client_id, room_id)
        conn.start()
        made.append(conn)
        return conn

    yield _make
    for conn in made:
        await conn.finish()
