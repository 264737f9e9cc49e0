from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import WebSocket, status

from videosync.core.config import Settings
from videosync.schemas.messages import outbound
from videosync.schemas.room import RelayStatsModel, RoomInfo, StatusResponse
from videosync.services.sweeps import LivenessMonitor, RoomReaper
from videosync.state.room_manager import ConnectionRegistry
from videosync.state.stats import RelayStats
from videosync.ws.handler import ConnectionHandler
from videosync.ws.router import MessageRouter

logger = logging.getLogger(__name__)


class RelayService:
    """Owns every piece of relay state for one application instance."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.stats = RelayStats()
        self.registry = ConnectionRegistry(self.stats)
        self.router = MessageRouter(self.registry)
        self.handler = ConnectionHandler(
            self.registry,
            self.router,
            self.stats,
            max_room_id_length=settings.max_room_id_length,
            queue_size=settings.outbound_queue_size,
        )
        self.liveness = LivenessMonitor(self.registry, settings.heartbeat_interval_s)
        self.reaper = RoomReaper(self.registry, settings.room_sweep_interval_s, settings.empty_room_grace_s)
        self._started_monotonic = time.monotonic()
        self._shutting_down = False

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._started_monotonic

    def start(self) -> None:
        self._started_monotonic = time.monotonic()
        self._shutting_down = False
        self.liveness.start()
        self.reaper.start()
        logger.info(
            "relay started heartbeat=%ss sweep=%ss grace=%ss",
            self.settings.heartbeat_interval_s,
            self.settings.room_sweep_interval_s,
            self.settings.empty_room_grace_s,
        )

    async def stop(self) -> None:
        await self.liveness.stop()
        await self.reaper.stop()

    async def handle_connection(self, websocket: WebSocket, room_id: Optional[str], client_id: Optional[str]) -> None:
        await self.handler.handle(websocket, room_id, client_id)

    async def shutdown(self) -> None:
        """Tell every room we are going away, then close every connection."""
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("relay shutting down rooms=%d connections=%d",
                    len(self.registry.room_ids()), self.stats.current_connections)
        await self.stop()

        notice = outbound("server_shutdown", message="Server is shutting down")
        for room_id in self.registry.room_ids():
            self.registry.broadcast(room_id, None, notice)

        connections = self.registry.connections()
        for conn in connections:
            await conn.close(status.WS_1001_GOING_AWAY, "Server shutting down")
        if not connections:
            return
        try:
            await asyncio.wait_for(
                asyncio.gather(*(conn.wait_stopped() for conn in connections)),
                timeout=self.settings.shutdown_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("shutdown timed out waiting for %d connection(s)", len(connections))

    def status(self) -> StatusResponse:
        return StatusResponse(
            port=self.settings.port,
            uptime=round(self.uptime, 3),
            stats=RelayStatsModel(**self.stats.as_wire()),
            timestamp=datetime.now(timezone.utc),
        )

    def rooms(self) -> Dict[str, RoomInfo]:
        return self.registry.snapshot()
