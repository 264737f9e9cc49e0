from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict

from videosync.schemas.messages import (
    CONTROL_TYPES,
    InboundEnvelope,
    InboundType,
    error_message,
    outbound,
)
from videosync.state.room_manager import ConnectionRegistry
from videosync.ws.connection import Connection

logger = logging.getLogger(__name__)

Handler = Callable[[Connection, InboundEnvelope], Awaitable[None]]


class MessageRouter:
    """Maps each ``InboundType`` to its relay rule.

    Holds no per-connection state. Every broadcast excludes the sender
    except ``chat_message``.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry
        self._handlers: Dict[InboundType, Handler] = {
            InboundType.PING: self._on_ping,
            InboundType.SYNC_START: self._on_sync_start,
            InboundType.SYNC_STOP: self._on_sync_stop,
            InboundType.PLAYER_STATE: self._on_player_state,
            InboundType.SYNC_REQUEST: self._on_sync_request,
            InboundType.SYNC_RESPONSE: self._on_sync_response,
            InboundType.CHAT_MESSAGE: self._on_chat_message,
            InboundType.HEARTBEAT_ACK: self._on_heartbeat_ack,
        }
        for control in CONTROL_TYPES:
            self._handlers[control] = self._on_control
        missing = set(InboundType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"no relay rule for: {sorted(m.value for m in missing)}")

    async def dispatch(self, conn: Connection, message: InboundEnvelope) -> None:
        try:
            kind = InboundType(message.type)
        except ValueError:
            logger.warning("unknown message type=%r client=%s", message.type, conn.client_id)
            conn.send(error_message(f"Unknown message type: {message.type}"))
            return
        logger.debug("message room=%s client=%s type=%s", conn.room_id, conn.client_id, kind.value)
        await self._handlers[kind](conn, message)

    def _to_peers(self, conn: Connection, message: dict) -> int:
        return self.registry.broadcast(conn.room_id, conn, message)

    async def _on_ping(self, conn: Connection, message: InboundEnvelope) -> None:
        conn.send(outbound("pong", original=message.get("timestamp")))

    async def _on_sync_start(self, conn: Connection, message: InboundEnvelope) -> None:
        self._to_peers(conn, outbound("sync_started", clientId=conn.client_id, playerId=message.get("playerId")))
        logger.info("sync started room=%s client=%s player=%s", conn.room_id, conn.client_id, message.get("playerId"))

    async def _on_sync_stop(self, conn: Connection, message: InboundEnvelope) -> None:
        self._to_peers(conn, outbound("sync_stopped", clientId=conn.client_id))
        logger.info("sync stopped room=%s client=%s", conn.room_id, conn.client_id)

    async def _on_control(self, conn: Connection, message: InboundEnvelope) -> None:
        self._to_peers(conn, outbound(message.type, clientId=conn.client_id, data=message.get("data")))

    async def _on_player_state(self, conn: Connection, message: InboundEnvelope) -> None:
        self._to_peers(
            conn,
            outbound(
                "player_state_update",
                clientId=conn.client_id,
                state=message.get("state"),
                changes=message.get("changes"),
            ),
        )

    async def _on_sync_request(self, conn: Connection, message: InboundEnvelope) -> None:
        self._to_peers(conn, outbound("sync_request", clientId=conn.client_id))

    async def _on_sync_response(self, conn: Connection, message: InboundEnvelope) -> None:
        self._to_peers(conn, outbound("sync_response", clientId=conn.client_id, state=message.get("state")))

    async def _on_chat_message(self, conn: Connection, message: InboundEnvelope) -> None:
        self.registry.broadcast(
            conn.room_id,
            None,
            outbound(
                "chat_message",
                clientId=conn.client_id,
                message=message.get("message"),
                username=message.get("username") or conn.client_id,
            ),
        )

    async def _on_heartbeat_ack(self, conn: Connection, message: InboundEnvelope) -> None:
        # Liveness is refreshed by the handler on every inbound frame.
        return None
