"""Python relay client.

Speaks the same wire protocol as the browser extension and follows the same
reconnection contract: on an unexpected close it reconnects with exponential
backoff, resending the same ``roomId`` and ``clientId``. The relay treats each
reconnect as a fresh join.

Usage:
    client = RelayClient("ws://localhost:8080", "movie1")
    client.on("play", lambda msg: print("peer played at", msg["data"]))
    await client.connect()
    await client.send({"type": "sync_start", "playerId": "video-0"})
    ...
    await client.disconnect()
"""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from videosync.core.ids import generate_client_id

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000

MessageHandler = Callable[[Dict[str, Any]], Any]


class RelayClient:
    def __init__(
        self,
        url: str,
        room_id: str,
        client_id: Optional[str] = None,
        max_reconnect_attempts: int = 5,
        reconnect_interval: float = 2.0,
        ignore_echoes: bool = False,
    ) -> None:
        self.url = url
        self.room_id = room_id
        self.client_id = client_id or generate_client_id()
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_interval = reconnect_interval
        self.ignore_echoes = ignore_echoes
        self.reconnect_attempts = 0
        self._handlers: Dict[str, List[MessageHandler]] = {}
        self._ws: Any = None
        self._receiver: Optional[asyncio.Task[None]] = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def build_url(self) -> str:
        query = urlencode({"roomId": self.room_id, "clientId": self.client_id})
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{query}"

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before reconnect ``attempt`` (1-based)."""
        return self.reconnect_interval * (2 ** max(0, attempt - 1))

    def on(self, message_type: str, handler: MessageHandler) -> None:
        self._handlers.setdefault(message_type, []).append(handler)

    def off(self, message_type: str, handler: MessageHandler) -> None:
        handlers = self._handlers.get(message_type)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(message_type, None)

    def is_echo(self, message: Dict[str, Any]) -> bool:
        # ``connected`` carries our own id but is addressed to us, not an echo
        return message.get("type") != "connected" and message.get("clientId") == self.client_id

    async def connect(self) -> None:
        self._closing = False
        await self._open()

    async def disconnect(self) -> None:
        self._closing = True
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close(code=NORMAL_CLOSURE, reason="Client disconnect")
        receiver, self._receiver = self._receiver, None
        if receiver is not None and receiver is not asyncio.current_task():
            receiver.cancel()
            await asyncio.gather(receiver, return_exceptions=True)

    async def send(self, message: Dict[str, Any]) -> bool:
        if self._ws is None:
            return False
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed:
            return False
        return True

    async def dispatch(self, message: Dict[str, Any]) -> None:
        if self.ignore_echoes and self.is_echo(message):
            return
        for handler in list(self._handlers.get(message.get("type", ""), [])):
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("handler failed for type=%s", message.get("type"))

    async def _open(self) -> None:
        self._ws = await websockets.connect(self.build_url())
        self.reconnect_attempts = 0
        self._receiver = asyncio.create_task(self._receive_loop(self._ws))
        logger.info("connected room=%s client=%s", self.room_id, self.client_id)

    async def _receive_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("dropping non-JSON frame from relay")
                    continue
                if isinstance(message, dict):
                    await self.dispatch(message)
        except ConnectionClosed:
            pass

        code = ws.close_code
        if self._ws is ws:
            self._ws = None
        logger.info("disconnected room=%s code=%s", self.room_id, code)
        if self._closing or code == NORMAL_CLOSURE:
            return
        await self._reconnect()

    async def _reconnect(self) -> None:
        while not self._closing and self.reconnect_attempts < self.max_reconnect_attempts:
            self.reconnect_attempts += 1
            delay = self.backoff_delay(self.reconnect_attempts)
            logger.info(
                "reconnecting in %.1fs (attempt %d/%d)",
                delay, self.reconnect_attempts, self.max_reconnect_attempts,
            )
            await asyncio.sleep(delay)
            if self._closing:
                return
            try:
                await self._open()
                return
            except (OSError, WebSocketException) as exc:
                logger.warning("reconnect failed: %s", exc)
        if not self._closing:
            logger.error("giving up after %d reconnect attempts", self.reconnect_attempts)
