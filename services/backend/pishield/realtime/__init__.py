"""
PiShield v1 - Realtime Module
"""

from pishield.realtime.broadcast import BroadcastService
from pishield.realtime.registry import ClientRegistry, ConnectedClient
from pishield.realtime.session import ClientSession, SessionState

__all__ = [
    "BroadcastService",
    "ClientRegistry",
    "ConnectedClient",
    "ClientSession",
    "SessionState",
]
