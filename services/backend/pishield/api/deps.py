"""
PiShield v1 - Request Dependencies
Components built in the lifespan handler live on ``app.state``.
"""

from fastapi import Request

from pishield.db import RowStore
from pishield.realtime.broadcast import BroadcastService
from pishield.security import SupabaseAuthClient
from pishield.stats import StatAggregator


def get_store(request: Request) -> RowStore:
    return request.app.state.store


def get_broadcaster(request: Request) -> BroadcastService:
    return request.app.state.broadcaster


def get_aggregator(request: Request) -> StatAggregator:
    return request.app.state.aggregator


def get_auth_client(request: Request) -> SupabaseAuthClient:
    return request.app.state.auth
