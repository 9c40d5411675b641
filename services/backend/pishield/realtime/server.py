"""
PiShield v1 - WebSocket Endpoint
"""

import logging

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketState

from pishield.config import settings
from pishield.realtime.session import ClientSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class WebSocketConnection:
    """Adapts a Starlette WebSocket to the realtime ClientConnection protocol."""

    def __init__(self, websocket: WebSocket):
        self._websocket = websocket

    def is_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, text: str) -> None:
        await self._websocket.send_text(text)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Live updates channel. Clients must send an AUTH message first."""
    await websocket.accept()
    logger.info("WebSocket connection established")

    state = websocket.app.state
    session = ClientSession(
        WebSocketConnection(websocket),
        state.broadcaster.registry,
        state.auth,
        ping_interval=settings.ws_ping_interval_seconds,
    )
    session.start()

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                raw = message["bytes"].decode("utf-8", errors="replace")
            if raw is not None:
                await session.handle_message(raw)
    finally:
        session.close()
