from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from videosync.core.ids import now_ms


class InboundType(str, Enum):
    """Every message kind a relay client may send."""

    PING = "ping"
    SYNC_START = "sync_start"
    SYNC_STOP = "sync_stop"
    PLAY = "play"
    PAUSE = "pause"
    SEEK = "seek"
    VOLUME_CHANGE = "volume_change"
    PLAYER_STATE = "player_state"
    SYNC_REQUEST = "sync_request"
    SYNC_RESPONSE = "sync_response"
    CHAT_MESSAGE = "chat_message"
    HEARTBEAT_ACK = "heartbeat_ack"


# Verbatim playback controls relayed with an opaque ``data`` payload
CONTROL_TYPES = frozenset(
    {InboundType.PLAY, InboundType.PAUSE, InboundType.SEEK, InboundType.VOLUME_CHANGE}
)


class InboundEnvelope(BaseModel):
    """Inbound wire envelope.

    Only ``type`` is checked; type-specific fields (``data``, ``state``,
    ``changes`` and so on) pass through untouched.
    """

    model_config = ConfigDict(extra="allow", strict=True)

    type: str = Field(min_length=1)

    def get(self, name: str, default: Any = None) -> Any:
        return (self.model_extra or {}).get(name, default)


class MessageParseError(ValueError):
    """Raised when a frame is not valid JSON."""


class MessageFormatError(ValueError):
    """Raised when a frame is JSON but not a valid envelope."""


def parse_frame(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise MessageParseError(str(exc)) from exc


def validate_envelope(data: Any) -> InboundEnvelope:
    if not isinstance(data, dict):
        raise MessageFormatError("envelope must be a JSON object")
    try:
        return InboundEnvelope.model_validate(data)
    except ValidationError as exc:
        raise MessageFormatError(str(exc)) from exc


def outbound(type_: str, **fields: Any) -> dict[str, Any]:
    """Build an outbound message stamped with the server delivery time.

    Fields left as ``None`` are omitted, so an optional value the sender never
    supplied does not show up on the wire as ``null``.
    """
    message: dict[str, Any] = {"type": type_}
    message.update((key, value) for key, value in fields.items() if value is not None)
    message["timestamp"] = now_ms()
    return message


def error_message(error: str) -> dict[str, Any]:
    return outbound("error", error=error)
