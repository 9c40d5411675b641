"""
PiShield v1 - Alert Routes
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from pishield.api.deps import get_aggregator, get_broadcaster, get_store
from pishield.db import ALERTS, AnyOf, Filter, RowStore, RowStoreError, escape_like
from pishield.realtime.broadcast import BroadcastService
from pishield.realtime.events import announce_new_alert
from pishield.schemas import (
    AlertCreate,
    AlertListResponse,
    AlertOut,
    AlertResponse,
    AlertStatusUpdate,
    Pagination,
)
from pishield.security import current_user_dependency
from pishield.stats import StatAggregator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/alerts", tags=["alerts"], dependencies=[current_user_dependency])

# Accepted ?sort= values -> column
SORT_COLUMNS = {
    "timestamp": "timestamp",
    "severity": "severity",
    "status": "status",
    "type": "type",
    "source_ip": "source_ip",
    "sourceIp": "source_ip",
}


@router.get("", response_model=AlertListResponse)
async def list_alerts(
    severity: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    sort: str = Query("timestamp"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: RowStore = Depends(get_store),
):
    """List alerts with filters and pagination."""
    if sort not in SORT_COLUMNS:
        raise HTTPException(status_code=400, detail=f"Invalid sort column: {sort}")

    filters = []
    if severity and severity != "all":
        filters.append(Filter("severity", "eq", severity))
    if status_filter and status_filter != "all":
        filters.append(Filter("status", "eq", status_filter))
    if search:
        pattern = f"%{escape_like(search)}%"
        filters.append(AnyOf((
            Filter("source_ip", "ilike", pattern),
            Filter("type", "ilike", pattern),
        )))

    try:
        result = await store.select(
            ALERTS,
            filters=filters,
            order_by=SORT_COLUMNS[sort],
            descending=order == "desc",
            offset=(page - 1) * limit,
            limit=limit,
            with_count=True,
        )
    except RowStoreError as e:
        logger.error(f"Error fetching alerts: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    total = result.total or 0
    return AlertListResponse(
        alerts=[AlertOut.model_validate(row) for row in result.rows],
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        ),
    )


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(alert_id: str, store: RowStore = Depends(get_store)):
    """Get a single alert."""
    try:
        result = await store.select(ALERTS, filters=[Filter("id", "eq", alert_id)], limit=1)
    except RowStoreError as e:
        logger.error(f"Error fetching alert {alert_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not result.rows:
        raise HTTPException(status_code=404, detail="Alert not found")
    return AlertResponse(alert=AlertOut.model_validate(result.rows[0]))


@router.put("/{alert_id}/status", response_model=AlertResponse)
async def update_alert_status(
    alert_id: str,
    payload: AlertStatusUpdate,
    store: RowStore = Depends(get_store),
    broadcaster: BroadcastService = Depends(get_broadcaster),
):
    """Move an alert to a new status and notify live dashboards."""
    new_status = payload.status.value
    try:
        rows = await store.update(
            ALERTS,
            {"status": new_status, "updated_at": datetime.now(timezone.utc)},
            filters=[Filter("id", "eq", alert_id)],
        )
    except RowStoreError as e:
        logger.error(f"Error updating alert {alert_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not rows:
        raise HTTPException(status_code=404, detail="Alert not found")

    await broadcaster.broadcast_alert_update(alert_id, new_status)
    logger.info(f"Alert {alert_id} moved to {new_status}")
    return AlertResponse(alert=AlertOut.model_validate(rows[0]))


@router.post("", response_model=AlertResponse, status_code=status.HTTP_201_CREATED)
async def create_alert(
    payload: AlertCreate,
    store: RowStore = Depends(get_store),
    broadcaster: BroadcastService = Depends(get_broadcaster),
    aggregator: StatAggregator = Depends(get_aggregator),
):
    """Create an alert (used by detection scripts) and push it live."""
    values = payload.model_dump(mode="json", exclude_none=True)
    values["timestamp"] = payload.timestamp or datetime.now(timezone.utc)

    try:
        row = await store.insert(ALERTS, values)
    except RowStoreError as e:
        logger.error(f"Error creating alert: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    alert = AlertOut.model_validate(row)
    logger.info(f"New alert created: {alert.id}")

    await announce_new_alert(broadcaster, aggregator, alert)
    return AlertResponse(alert=alert)
