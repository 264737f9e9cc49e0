from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from videosync.schemas.messages import outbound
from videosync.schemas.room import RoomInfo
from videosync.state.stats import RelayStats
from videosync.ws.connection import Connection

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Room:
    id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    members: Set[Connection] = field(default_factory=set)
    # time.monotonic() of the moment the last member left; None while occupied
    empty_since: Optional[float] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    reaped: bool = False

    @property
    def size(self) -> int:
        return len(self.members)


class ConnectionRegistry:
    """Room id -> member connections.

    Creating and deleting rooms is serialized by the registry lock; adding and
    removing members is serialized per room, so joins to different rooms
    never wait on each other. Broadcasts iterate a snapshot and only enqueue,
    so they take no lock at all.
    """

    def __init__(self, stats: Optional[RelayStats] = None) -> None:
        self._rooms: Dict[str, Room] = {}
        self._lock = asyncio.Lock()
        self.stats = stats if stats is not None else RelayStats()

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def room_ids(self) -> List[str]:
        return list(self._rooms.keys())

    def room_size(self, room_id: str) -> int:
        room = self._rooms.get(room_id)
        return room.size if room else 0

    def connections(self) -> List[Connection]:
        return [conn for room in list(self._rooms.values()) for conn in list(room.members)]

    async def _ensure_room(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is not None:
            return room
        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                room = Room(id=room_id)
                self._rooms[room_id] = room
                self.stats.rooms_created += 1
                logger.info("room created room=%s", room_id)
            return room

    async def join(self, room_id: str, connection: Connection) -> int:
        """Add ``connection`` to ``room_id`` and announce it. Returns the room size."""
        while True:
            room = await self._ensure_room(room_id)
            async with room.lock:
                if room.reaped:
                    # Lost a race with the reclamation sweep; recreate.
                    continue
                is_new = connection not in room.members
                room.members.add(connection)
                room.empty_since = None
                size = room.size
                peers = [c.client_id for c in room.members if c is not connection and c.is_open]
            break

        if not is_new:
            logger.debug("duplicate join ignored room=%s client=%s", room_id, connection.client_id)
            return size

        connection.send(outbound("connected", clientId=connection.client_id, roomId=room_id, roomSize=size))
        self.broadcast(room_id, connection, outbound("user_joined", clientId=connection.client_id, roomSize=size))
        connection.send(outbound("room_info", clients=peers, roomSize=size))
        logger.info("client joined room=%s client=%s size=%d", room_id, connection.client_id, size)
        return size

    async def leave(self, room_id: str, connection: Connection, code: int = 1000, reason: str = "") -> bool:
        """Remove ``connection``; safe to call more than once."""
        room = self._rooms.get(room_id)
        if room is None:
            return False
        async with room.lock:
            if connection not in room.members:
                return False
            room.members.discard(connection)
            size = room.size
            if size == 0:
                room.empty_since = time.monotonic()

        logger.info(
            "client left room=%s client=%s code=%s reason=%r size=%d",
            room_id, connection.client_id, code, reason, size,
        )
        self.broadcast(room_id, None, outbound("user_left", clientId=connection.client_id, roomSize=size))
        return True

    def broadcast(self, room_id: str, exclude: Optional[Connection], message: dict) -> int:
        """Best-effort fan-out; returns how many members accepted the message."""
        room = self._rooms.get(room_id)
        if room is None:
            return 0
        delivered = 0
        for member in list(room.members):
            if member is exclude or not member.is_open:
                continue
            try:
                if member.send(message):
                    delivered += 1
            except Exception as exc:
                logger.debug("broadcast skipped client=%s err=%s", member.client_id, exc)
        return delivered

    async def reap_empty_rooms(self, grace_s: float, now: Optional[float] = None) -> List[str]:
        """Delete rooms that have been empty for longer than ``grace_s``."""
        now = time.monotonic() if now is None else now
        removed: List[str] = []
        async with self._lock:
            for room_id, room in list(self._rooms.items()):
                if room.members or room.empty_since is None or room.lock.locked():
                    continue
                if now - room.empty_since > grace_s:
                    room.reaped = True
                    del self._rooms[room_id]
                    removed.append(room_id)
        for room_id in removed:
            logger.info("empty room reclaimed room=%s", room_id)
        return removed

    def snapshot(self) -> Dict[str, RoomInfo]:
        return {
            room_id: RoomInfo(
                clientCount=room.size,
                clientIds=[c.client_id for c in room.members],
                createdAt=room.created_at,
            )
            for room_id, room in list(self._rooms.items())
        }
