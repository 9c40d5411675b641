"""
PiShield v1 - Dashboard Routes
"""

import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query

from pishield.api.deps import get_aggregator, get_store
from pishield.db import ALERTS, Filter, RowStore, RowStoreError
from pishield.schemas import AlertOut, AttackSource, ChartPoint, DashboardStats
from pishield.security import current_user_dependency
from pishield.stats import PERIODS, StatAggregator, StatsError, period_start

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"], dependencies=[current_user_dependency])

ATTACK_SOURCES_LIMIT = 5


def _chart_label(day: date) -> str:
    return f"{day.strftime('%b')} {day.day}"


def build_chart_series(timestamps: List[datetime], days: int, today: date) -> List[ChartPoint]:
    """One point per day from ``today - days`` to ``today``, zero-filled."""
    per_day: Dict[date, int] = Counter(ts.astimezone(timezone.utc).date() for ts in timestamps)
    start = today - timedelta(days=days)
    return [
        ChartPoint(date=_chart_label(start + timedelta(days=i)), attacks=per_day.get(start + timedelta(days=i), 0))
        for i in range(days + 1)
    ]


@router.get("/stats", response_model=DashboardStats)
async def dashboard_stats(
    period: str = Query("today"),
    aggregator: StatAggregator = Depends(get_aggregator),
):
    """Dashboard summary cards."""
    if period not in PERIODS:
        raise HTTPException(status_code=400, detail=f"Invalid period. Use one of: {', '.join(PERIODS)}")

    try:
        return await aggregator.compute_stats(since=period_start(period))
    except StatsError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/chart-data", response_model=List[ChartPoint])
async def chart_data(
    days: int = Query(7, ge=1, le=90),
    store: RowStore = Depends(get_store),
):
    """Attacks per day for the trend chart."""
    now = datetime.now(timezone.utc)
    start = (now - timedelta(days=days)).replace(hour=0, minute=0, second=0, microsecond=0)

    try:
        result = await store.select(
            ALERTS,
            filters=[Filter("timestamp", "gte", start)],
            order_by="timestamp",
            descending=False,
            columns=("timestamp",),
        )
    except RowStoreError as e:
        logger.error(f"Error getting chart data: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return build_chart_series([row["timestamp"] for row in result.rows], days, now.date())


@router.get("/attack-sources", response_model=List[AttackSource])
async def attack_sources(store: RowStore = Depends(get_store)):
    """Most recent attack origins for the attack map."""
    try:
        result = await store.select(
            ALERTS,
            order_by="timestamp",
            descending=True,
            limit=ATTACK_SOURCES_LIMIT,
        )
    except RowStoreError as e:
        logger.error(f"Error getting attack sources: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return [AttackSource.from_alert(AlertOut.model_validate(row)) for row in result.rows]
