from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from fastapi import WebSocket, status
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

# Close code reported to the room when a transport dies without a close frame.
ABNORMAL_CLOSURE = status.WS_1006_ABNORMAL_CLOSURE
# Default application close code sent on the wire when a socket is terminated.
HEARTBEAT_TIMEOUT = 4000

_CLOSE = object()


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    JOINED = "joined"
    CLOSING = "closing"
    CLOSED = "closed"


class Connection:
    """One relay client session.

    Outbound traffic goes through a bounded queue drained by a writer task, so
    ``send`` never waits on the peer. A full queue or a closing connection
    drops the message.
    """

    def __init__(
        self,
        websocket: WebSocket,
        client_id: str,
        room_id: str,
        queue_size: int = 256,
    ) -> None:
        self.websocket = websocket
        self.client_id = client_id
        self.room_id = room_id
        self.joined_at = datetime.now(timezone.utc)
        self.is_alive = True
        self.state = ConnectionState.CONNECTING
        self.close_code: Optional[int] = None
        self.close_reason: str = ""
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task[None]] = None
        self._stopped = asyncio.Event()

    def __repr__(self) -> str:
        return f"Connection(client_id={self.client_id!r}, room_id={self.room_id!r}, state={self.state.value})"

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.JOINED

    @property
    def transport_alive(self) -> bool:
        """False once the server has seen the peer's transport go away.

        Protocol-level ping/pong runs in the ASGI server; a peer that stops
        answering is disconnected there and shows up here.
        """
        return self.websocket.client_state is not WebSocketState.DISCONNECTED

    def start(self) -> None:
        self.state = ConnectionState.JOINED
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop(), name=f"writer:{self.client_id}")

    def send(self, message: dict) -> bool:
        if not self.is_open:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.debug("outbound queue full, dropping %s for client=%s", message.get("type"), self.client_id)
            return False
        return True

    async def close(self, code: int = status.WS_1000_NORMAL_CLOSURE, reason: str = "") -> None:
        """Close after everything already queued has been written."""
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CLOSING
        self.close_code, self.close_reason = code, reason
        if self._writer is None or self._writer.done():
            await self._close_transport(code, reason)
            self._stopped.set()
            return
        try:
            self._queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            await self.terminate(reason, code=code)

    async def terminate(self, reason: str = "", code: int = HEARTBEAT_TIMEOUT) -> None:
        """Drop the transport immediately; queued messages are discarded."""
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING
        if self.close_code is None:
            self.close_code, self.close_reason = ABNORMAL_CLOSURE, reason
        await self._cancel_writer()
        await self._close_transport(code, reason)
        self._stopped.set()

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def finish(self) -> None:
        self.state = ConnectionState.CLOSED
        await self._cancel_writer()
        self._stopped.set()

    def note_disconnect(self, code: int, reason: str = "") -> None:
        if self.close_code is None:
            self.close_code, self.close_reason = code, reason
        if self.state is not ConnectionState.CLOSED:
            self.state = ConnectionState.CLOSING

    async def _write_loop(self) -> None:
        try:
            while True:
                item = await self._queue.get()
                if item is _CLOSE:
                    await self._close_transport(self.close_code or status.WS_1000_NORMAL_CLOSURE, self.close_reason)
                    return
                await self.websocket.send_text(json.dumps(item))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Peer went away mid-write; the receive side reports the close.
            logger.debug("write failed client=%s err=%s", self.client_id, exc)
            self.note_disconnect(ABNORMAL_CLOSURE, str(exc))
        finally:
            self._stopped.set()

    async def _cancel_writer(self) -> None:
        writer = self._writer
        if writer is None or writer.done() or writer is asyncio.current_task():
            return
        writer.cancel()
        # Wait without absorbing a cancellation aimed at the caller
        await asyncio.wait({writer})

    async def _close_transport(self, code: int, reason: str) -> None:
        try:
            await self.websocket.close(code=code, reason=reason or None)
        except Exception as exc:
            # Already closed by the peer or the server
            logger.debug("close ignored client=%s err=%s", self.client_id, exc)
