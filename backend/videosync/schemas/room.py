from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class RoomInfo(BaseModel):
    clientCount: int = Field(ge=0)
    clientIds: list[str] = []
    createdAt: datetime


class RelayStatsModel(BaseModel):
    totalConnections: int
    currentConnections: int
    roomsCreated: int
    messagesProcessed: int


class StatusResponse(BaseModel):
    status: Literal["running"] = "running"
    port: int
    uptime: float = Field(description="Seconds since the relay service started")
    stats: RelayStatsModel
    timestamp: datetime
