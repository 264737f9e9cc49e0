from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, WebSocket

from videosync.services.relay import RelayService


router = APIRouter()


def get_relay(websocket: WebSocket) -> RelayService:
    # Access the relay created in main.create_app via app.state
    return websocket.app.state.relay  # type: ignore[attr-defined]


@router.websocket("/")
@router.websocket("/ws")
async def relay_endpoint(
    websocket: WebSocket,
    roomId: Optional[str] = None,
    clientId: Optional[str] = None,
    relay: RelayService = Depends(get_relay),
) -> None:
    await relay.handle_connection(websocket, roomId, clientId)
