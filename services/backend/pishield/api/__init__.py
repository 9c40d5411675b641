"""
PiShield v1 - HTTP API Package
"""

from pishield.api.actions import router as actions_router
from pishield.api.alerts import router as alerts_router
from pishield.api.auth import router as auth_router
from pishield.api.dashboard import router as dashboard_router
from pishield.api.devices import router as devices_router

__all__ = ["actions_router", "alerts_router", "auth_router", "dashboard_router", "devices_router"]
