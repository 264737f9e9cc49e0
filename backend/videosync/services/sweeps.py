from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from videosync.state.room_manager import ConnectionRegistry

logger = logging.getLogger(__name__)


class PeriodicSweep:
    """Runs ``sweep()`` every ``interval_s`` seconds until stopped.

    A failing sweep is logged and the loop keeps going.
    """

    name = "sweep"

    def __init__(self, interval_s: float) -> None:
        self.interval_s = interval_s
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.wait({task})

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self.sweep()
            except Exception:
                logger.exception("%s failed", self.name)

    async def sweep(self) -> None:
        raise NotImplementedError


class LivenessMonitor(PeriodicSweep):
    """Reaps open connections whose transport has died under them.

    The probe itself is the protocol-level ping/pong run by uvicorn every
    ``interval_s`` (browsers answer it without any page code). A peer that
    stops answering is disconnected by the server; this sweep marks any
    connection still registered with a dead transport and terminates it on the
    next sweep unless an inbound frame arrived in between.
    """

    name = "liveness-monitor"

    def __init__(self, registry: ConnectionRegistry, interval_s: float = 30.0) -> None:
        super().__init__(interval_s)
        self.registry = registry

    async def sweep(self) -> int:
        terminated = 0
        for conn in self.registry.connections():
            if not conn.is_open:
                continue
            if not conn.is_alive:
                logger.info("transport dead, terminating client=%s room=%s", conn.client_id, conn.room_id)
                await conn.terminate("Heartbeat timeout")
                terminated += 1
                continue
            conn.is_alive = conn.transport_alive
        return terminated


class RoomReaper(PeriodicSweep):
    name = "room-reaper"

    def __init__(self, registry: ConnectionRegistry, interval_s: float = 60.0, grace_s: float = 300.0) -> None:
        super().__init__(interval_s)
        self.registry = registry
        self.grace_s = grace_s

    async def sweep(self) -> List[str]:
        removed = await self.registry.reap_empty_rooms(self.grace_s)
        if removed:
            logger.info("reclaimed %d empty room(s)", len(removed))
        return removed
