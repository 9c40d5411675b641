"""
PiShield v1 - Broadcast Service
Best-effort fan-out of realtime messages to registered clients.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from pishield.config import settings
from pishield.realtime.registry import ClientRegistry, ConnectedClient
from pishield.realtime.types import (
    ALERT_UPDATE,
    NEW_ALERT,
    NEW_ATTACK_SOURCE,
    STATS_UPDATE,
    encode_message,
    make_message,
)

logger = logging.getLogger(__name__)

Target = Union[None, str, Iterable[str]]


class BroadcastService:
    """
    Fire-and-forget broadcaster with:
    - Targeting (everyone, one principal, or a set of principals)
    - Liveness check before each write
    - Soft-fail (closed, failing or stalled connections are skipped, never retried)

    ``send`` never waits on a client: each write runs as its own task, so a
    connection that stops reading delays nobody else. Writes to the same
    connection keep the order they were sent in, and each one is abandoned
    after ``send_timeout`` seconds.

    Delivery is at-most-once. Clients that miss a message resync with their
    next full fetch.
    """

    def __init__(self, registry: Optional[ClientRegistry] = None, send_timeout: Optional[float] = None):
        self._registry = registry if registry is not None else ClientRegistry()
        self._send_timeout = send_timeout or settings.ws_send_timeout_seconds
        # id(connection) -> most recent write task for that connection
        self._tails: Dict[int, asyncio.Task] = {}

    @property
    def registry(self) -> ClientRegistry:
        return self._registry

    def _resolve(self, target: Target) -> List[ConnectedClient]:
        if target is None:
            return self._registry.clients()

        if isinstance(target, str):
            target = [target]

        resolved = []
        for principal_id in dict.fromkeys(target):
            client = self._registry.get(principal_id)
            if client is not None:
                resolved.append(client)
        return resolved

    async def send(self, message: Any, target: Target = None) -> int:
        """
        Dispatch a message to the resolved live targets without waiting for
        the writes. Returns the number of connections written to.
        """
        text = encode_message(message)
        dispatched = 0

        for client in self._resolve(target):
            if not client.connection.is_open():
                continue
            self._dispatch(client, text)
            dispatched += 1

        return dispatched

    def _dispatch(self, client: ConnectedClient, text: str) -> None:
        key = id(client.connection)
        previous = self._tails.get(key)
        task = asyncio.create_task(self._deliver(client, text, previous))
        self._tails[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))

    def _forget(self, key: int, task: asyncio.Task) -> None:
        if self._tails.get(key) is task:
            del self._tails[key]

    async def _deliver(self, client: ConnectedClient, text: str, previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            await asyncio.wait({previous})

        connection = client.connection
        if not connection.is_open():
            return
        try:
            await asyncio.wait_for(connection.send_text(text), self._send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Dropped message for {client.principal_id}: write timed out")
        except Exception as e:
            logger.debug(f"Dropped message for {client.principal_id}: {e}")

    async def flush(self) -> None:
        """Wait until every dispatched write has finished, failed or timed out."""
        while self._tails:
            await asyncio.wait(list(self._tails.values()))

    def close(self) -> None:
        """Abandon writes still in flight."""
        for task in list(self._tails.values()):
            task.cancel()
        self._tails.clear()

    async def broadcast_new_alert(self, alert: Any) -> int:
        return await self.send(make_message(NEW_ALERT, alert))

    async def broadcast_stats_update(self, stats: Any) -> int:
        return await self.send(make_message(STATS_UPDATE, stats))

    async def broadcast_alert_update(self, alert_id: str, status: str) -> int:
        return await self.send(make_message(ALERT_UPDATE, {"id": alert_id, "status": status}))

    async def broadcast_new_attack_source(self, source: Any) -> int:
        return await self.send(make_message(NEW_ATTACK_SOURCE, source))
