from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

from fastapi import WebSocket, status

from videosync.core.ids import generate_client_id
from videosync.schemas.messages import (
    MessageFormatError,
    MessageParseError,
    error_message,
    parse_frame,
    validate_envelope,
)
from videosync.state.room_manager import ConnectionRegistry
from videosync.state.stats import RelayStats
from videosync.ws.connection import ABNORMAL_CLOSURE, Connection
from videosync.ws.router import MessageRouter

logger = logging.getLogger(__name__)


def validate_join(room_id: Optional[str], max_length: int) -> Optional[str]:
    """Return the rejection reason for a room id, or None when it is usable."""
    if not room_id:
        return "Room ID is required"
    if len(room_id) > max_length:
        return "Room ID is too long"
    return None


class ConnectionHandler:
    """Drives one connection through connecting -> joined -> closing -> closed."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        router: MessageRouter,
        stats: RelayStats,
        max_room_id_length: int = 50,
        queue_size: int = 256,
    ) -> None:
        self.registry = registry
        self.router = router
        self.stats = stats
        self.max_room_id_length = max_room_id_length
        self.queue_size = queue_size

    async def handle(self, websocket: WebSocket, room_id: Optional[str], client_id: Optional[str]) -> None:
        await websocket.accept()
        reason = validate_join(room_id, self.max_room_id_length)
        if reason is not None:
            logger.warning("rejected connection room=%r reason=%s", room_id, reason)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=reason)
            return

        conn = Connection(websocket, client_id or generate_client_id(), room_id, queue_size=self.queue_size)
        await self.run(conn)

    async def run(self, conn: Connection) -> None:
        self.stats.connection_opened()
        conn.start()
        try:
            await self.registry.join(conn.room_id, conn)
            logger.info(
                "connection open client=%s room=%s current=%d",
                conn.client_id, conn.room_id, self.stats.current_connections,
            )
            await self._serve(conn)
        finally:
            # Bookkeeping first: teardown may itself be running under cancellation
            await self.registry.leave(
                conn.room_id,
                conn,
                conn.close_code if conn.close_code is not None else ABNORMAL_CLOSURE,
                conn.close_reason,
            )
            self.stats.connection_closed()
            await conn.finish()

    async def _serve(self, conn: Connection) -> None:
        reader = asyncio.create_task(self._read_loop(conn), name=f"reader:{conn.client_id}")
        stopped = asyncio.create_task(conn.wait_stopped())
        try:
            await asyncio.wait({reader, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (reader, stopped):
                task.cancel()
            await asyncio.gather(reader, stopped, return_exceptions=True)

    async def _read_loop(self, conn: Connection) -> None:
        while True:
            try:
                frame = await conn.websocket.receive()
            except Exception as exc:
                logger.warning("transport error client=%s err=%s", conn.client_id, exc)
                conn.note_disconnect(ABNORMAL_CLOSURE, str(exc))
                return

            if frame["type"] == "websocket.disconnect":
                code, reason = _disconnect_details(frame)
                conn.note_disconnect(code, reason)
                return

            raw = frame.get("text")
            if raw is None and frame.get("bytes") is not None:
                raw = frame["bytes"].decode("utf-8", errors="replace")
            if raw is None:
                continue
            try:
                await self.on_frame(conn, raw)
            except Exception:
                logger.exception("frame handling failed client=%s", conn.client_id)

    async def on_frame(self, conn: Connection, raw: str) -> None:
        conn.is_alive = True
        try:
            data = parse_frame(raw)
        except MessageParseError:
            conn.send(error_message("Failed to parse message"))
            return
        self.stats.messages_processed += 1
        try:
            message = validate_envelope(data)
        except MessageFormatError:
            conn.send(error_message("Invalid message format"))
            return
        await self.router.dispatch(conn, message)


def _disconnect_details(frame: dict) -> Tuple[int, str]:
    code = frame.get("code") or status.WS_1005_NO_STATUS_RCVD
    return int(code), frame.get("reason") or ""
