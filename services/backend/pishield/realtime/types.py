"""
PiShield v1 - Realtime Message Types
"""

import json
from typing import Any, Optional, Protocol, TypedDict

from pydantic import BaseModel

# Client -> server
AUTH = "AUTH"

# Server -> client
AUTH_SUCCESS = "AUTH_SUCCESS"
AUTH_ERROR = "AUTH_ERROR"
NEW_ALERT = "NEW_ALERT"
STATS_UPDATE = "STATS_UPDATE"
ALERT_UPDATE = "ALERT_UPDATE"
NEW_ATTACK_SOURCE = "NEW_ATTACK_SOURCE"
PING = "PING"


class WireMessage(TypedDict, total=False):
    """Envelope exchanged over the WebSocket in both directions."""
    type: str
    data: Any
    token: str
    message: str


class ClientConnection(Protocol):
    """Duplex connection the realtime layer writes to."""

    def is_open(self) -> bool:
        ...

    async def send_text(self, text: str) -> None:
        ...


def make_message(kind: str, data: Any = None, message: Optional[str] = None) -> WireMessage:
    """Build an envelope, dumping pydantic payloads with their wire aliases."""
    envelope: WireMessage = {"type": kind}
    if data is not None:
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True, mode="json")
        envelope["data"] = data
    if message is not None:
        envelope["message"] = message
    return envelope


def encode_message(message: Any) -> str:
    """Serialize an envelope for the wire. Strings pass through untouched."""
    if isinstance(message, str):
        return message
    return json.dumps(message, default=str)
