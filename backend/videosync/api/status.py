from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends, Request

from videosync.schemas.room import RoomInfo, StatusResponse
from videosync.services.relay import RelayService


router = APIRouter(tags=["status"])


def get_relay(request: Request) -> RelayService:
    return request.app.state.relay  # type: ignore[attr-defined]


@router.get("/status", response_model=StatusResponse)
async def relay_status(relay: RelayService = Depends(get_relay)) -> StatusResponse:
    return relay.status()


@router.get("/rooms", response_model=Dict[str, RoomInfo])
async def list_rooms(relay: RelayService = Depends(get_relay)) -> Dict[str, RoomInfo]:
    return relay.rooms()

