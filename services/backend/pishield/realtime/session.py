"""
PiShield v1 - Connection Session
Per-connection authentication handshake and keep-alive.
"""

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, Optional

from pishield.realtime.registry import ClientRegistry
from pishield.realtime.types import (
    AUTH,
    AUTH_ERROR,
    AUTH_SUCCESS,
    PING,
    ClientConnection,
    encode_message,
    make_message,
)
from pishield.security import AuthenticationError

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class ClientSession:
    """
    State machine for one WebSocket connection:

        UNAUTHENTICATED --AUTH ok--> AUTHENTICATED
        any state --disconnect--> CLOSED

    A failed AUTH replies AUTH_ERROR and leaves the state and the registry
    untouched; the client may retry on the same connection.
    """

    def __init__(
        self,
        connection: ClientConnection,
        registry: ClientRegistry,
        verifier: Any,
        ping_interval: Optional[float] = None,
    ):
        self._connection = connection
        self._registry = registry
        self._verifier = verifier
        self._ping_interval = ping_interval
        self._ping_task: Optional[asyncio.Task] = None

        self.state = SessionState.UNAUTHENTICATED
        self.principal_id: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    def start(self) -> None:
        """Start the keep-alive timer."""
        if self._ping_interval and self._ping_task is None:
            self._ping_task = asyncio.create_task(self._keepalive())

    async def handle_message(self, raw: str) -> None:
        """Process one inbound frame."""
        if self.state == SessionState.CLOSED:
            return

        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"WebSocket message error: {e}")
            return

        if not isinstance(data, dict):
            logger.error("WebSocket message error: expected a JSON object")
            return

        if data.get("type") == AUTH:
            await self._authenticate(data.get("token"))
        # Other client message types are ignored

    async def _authenticate(self, token: Optional[str]) -> None:
        try:
            if not token:
                raise AuthenticationError("Authorization token required")
            principal = await self._verifier.verify_token(token)
        except AuthenticationError as e:
            logger.warning(f"WebSocket authentication failed: {e.message}")
            await self._reply(make_message(AUTH_ERROR, message="Authentication failed"))
            return

        if self.state == SessionState.CLOSED:
            # Disconnected while the token was being verified
            return

        if self.principal_id and self.principal_id != principal.id:
            self._registry.unregister(self.principal_id)

        self.principal_id = principal.id
        self.state = SessionState.AUTHENTICATED
        self._registry.register(principal.id, self._connection)

        await self._reply(make_message(AUTH_SUCCESS, message="Authentication successful"))
        logger.info(f"WebSocket client authenticated: {principal.id}")

    async def _reply(self, message: dict) -> None:
        if not self._connection.is_open():
            return
        try:
            await self._connection.send_text(encode_message(message))
        except Exception as e:
            logger.debug(f"WebSocket reply failed: {e}")

    async def _keepalive(self) -> None:
        while self.state != SessionState.CLOSED:
            await asyncio.sleep(self._ping_interval)
            if self.state == SessionState.CLOSED:
                break
            await self._reply(make_message(PING, {"timestamp": time.time()}))

    def close(self) -> None:
        """Handle disconnect from any state."""
        if self.state == SessionState.CLOSED:
            return

        self.state = SessionState.CLOSED
        if self._ping_task is not None:
            self._ping_task.cancel()
            self._ping_task = None

        if self.principal_id:
            self._registry.unregister(self.principal_id)
            logger.info(f"WebSocket client disconnected: {self.principal_id}")
        else:
            logger.info("Unauthenticated WebSocket client disconnected")
