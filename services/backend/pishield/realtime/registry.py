"""
PiShield v1 - Client Registry
In-memory map of authenticated principal id -> open connection.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from pishield.realtime.types import ClientConnection

logger = logging.getLogger(__name__)


@dataclass
class ConnectedClient:
    """Registry entry for one authenticated connection."""
    principal_id: str
    connection: ClientConnection
    authenticated: bool = True


class ClientRegistry:
    """
    Registry of authenticated WebSocket clients.

    A principal has at most one registered connection: registering again
    replaces the previous entry (last connection wins). Only touched from the
    event loop thread, so no locking is needed.
    """

    def __init__(self):
        self._clients: Dict[str, ConnectedClient] = {}

    def register(self, principal_id: str, connection: ClientConnection) -> ConnectedClient:
        """Store (or overwrite) the connection for a principal."""
        previous = self._clients.get(principal_id)
        if previous is not None and previous.connection is not connection:
            logger.info(f"Replacing existing connection for principal {principal_id}")

        client = ConnectedClient(principal_id=principal_id, connection=connection)
        self._clients[principal_id] = client
        return client

    def unregister(self, principal_id: str) -> bool:
        """Remove a principal. Unknown ids are ignored. Returns True if removed."""
        return self._clients.pop(principal_id, None) is not None

    def get(self, principal_id: str) -> Optional[ConnectedClient]:
        return self._clients.get(principal_id)

    def clients(self) -> List[ConnectedClient]:
        """Snapshot of the registered clients."""
        return list(self._clients.values())

    def principal_ids(self) -> List[str]:
        return list(self._clients)

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, principal_id: object) -> bool:
        return principal_id in self._clients
