"""
PiShield v1 - Dashboard Stat Aggregation
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pishield.config import settings
from pishield.db import ALERTS, BLOCKED_IPS, AnyOf, Filter, RowStoreError
from pishield.detectors.severity import CRITICAL, HIGH, compute_risk_level
from pishield.schemas import AlertStatus, DashboardStats

logger = logging.getLogger(__name__)

# An alert counts as active until it is resolved
ACTIVE_ALERT_FILTER = Filter("status", "neq", AlertStatus.RESOLVED.value)

PERIODS = ("all", "today", "24h", "7d")


class StatsError(Exception):
    """Raised when any of the dashboard queries fails."""


def period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Translate a period name into the lower bound of the attack window."""
    now = now or datetime.now(timezone.utc)
    if period == "all":
        return None
    if period == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "24h":
        return now - timedelta(hours=24)
    if period == "7d":
        return now - timedelta(days=7)
    raise ValueError(f"Unknown period: {period}")


class StatAggregator:
    """
    Computes the dashboard summary from four independent row-store queries.
    The computation is all-or-nothing: one failed query fails the call.
    """

    def __init__(
        self,
        store: Any,
        risk_window_hours: Optional[int] = None,
        device_count: Optional[int] = None,
    ):
        self._store = store
        self._risk_window = timedelta(hours=risk_window_hours or settings.risk_window_hours)
        self._device_count = device_count if device_count is not None else settings.device_count_placeholder

    async def _count_attacks(self, since: Optional[datetime]) -> int:
        filters = [Filter("timestamp", "gte", since)] if since else []
        return await self._store.count(ALERTS, filters)

    async def _count_active_alerts(self) -> int:
        return await self._store.count(ALERTS, [ACTIVE_ALERT_FILTER])

    async def _count_active_blocked_ips(self, now: datetime) -> int:
        not_expired = AnyOf((
            Filter("expires_at", "is_null", True),
            Filter("expires_at", "gt", now),
        ))
        return await self._store.count(BLOCKED_IPS, [not_expired])

    async def _recent_severe_alerts(self, now: datetime):
        result = await self._store.select(
            ALERTS,
            filters=[
                Filter("severity", "in", (CRITICAL, HIGH)),
                Filter("timestamp", "gt", now - self._risk_window),
            ],
            order_by="timestamp",
            descending=True,
            columns=("severity",),
        )
        return result.rows

    async def compute_stats(self, since: Optional[datetime] = None) -> DashboardStats:
        """
        Compute the dashboard summary.

        Args:
            since: Only count attacks from this moment on (None = all time)

        Raises:
            StatsError: if any underlying query fails
        """
        now = datetime.now(timezone.utc)
        try:
            attacks, active, blocked, severe = await asyncio.gather(
                self._count_attacks(since),
                self._count_active_alerts(),
                self._count_active_blocked_ips(now),
                self._recent_severe_alerts(now),
            )
        except RowStoreError as e:
            logger.error(f"Error computing dashboard stats: {e}")
            raise StatsError(str(e)) from e

        critical_count = sum(1 for row in severe if row.get("severity") == CRITICAL)
        high_count = sum(1 for row in severe if row.get("severity") == HIGH)

        return DashboardStats(
            attacks_blocked=attacks or 0,
            active_alerts=active or 0,
            risk_level=compute_risk_level(critical_count, high_count),
            # TODO: count rows of a device inventory table once devices are tracked
            device_count=self._device_count,
            blocked_ip_count=blocked or 0,
        )
