"""
PiShield v1 - Response Action Routes
Blocking and unblocking source IPs.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from pishield.api.deps import get_store
from pishield.db import BLOCKED_IPS, Filter, RowStore, RowStoreError
from pishield.firewall import FirewallError, apply_rule
from pishield.schemas import (
    BlockedIpListResponse,
    BlockedIpOut,
    BlockIpRequest,
    BlockIpResponse,
    UnblockIpRequest,
)
from pishield.security import Principal, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/actions", tags=["actions"])

DEFAULT_BLOCK_REASON = "Manually blocked via dashboard"


@router.post("/block-ip", response_model=BlockIpResponse)
async def block_ip(
    payload: BlockIpRequest,
    user: Principal = Depends(get_current_user),
    store: RowStore = Depends(get_store),
):
    """
    Record a blocked IP, then add the firewall rule.
    The row is kept even if the firewall command fails.
    """
    ip = payload.ip
    try:
        row = await store.insert(BLOCKED_IPS, {
            "ip_address": ip,
            "blocked_by_user_id": user.id,
            "reason": payload.reason or DEFAULT_BLOCK_REASON,
            "expires_at": payload.expires_at,
        })
    except RowStoreError as e:
        logger.error(f"Error storing blocked IP in database: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    try:
        await apply_rule("block", ip)
    except FirewallError as e:
        logger.error(f"Error executing iptables command: {e}")
        raise HTTPException(
            status_code=500,
            detail=f"IP {ip} was recorded as blocked in the database, but the firewall command failed.",
        )

    logger.info(f"Successfully blocked IP {ip}")
    return BlockIpResponse(
        message=f"IP {ip} has been blocked successfully",
        blocked_ip=BlockedIpOut.model_validate(row),
    )


@router.post("/unblock-ip", response_model=BlockIpResponse)
async def unblock_ip(
    payload: UnblockIpRequest,
    user: Principal = Depends(get_current_user),
    store: RowStore = Depends(get_store),
):
    """Remove a blocked IP, then delete the firewall rule."""
    ip = payload.ip
    try:
        rows = await store.delete(BLOCKED_IPS, [Filter("ip_address", "eq", ip)])
    except RowStoreError as e:
        logger.error(f"Error removing blocked IP from database: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not rows:
        raise HTTPException(status_code=404, detail=f"IP {ip} is not blocked")

    try:
        await apply_rule("unblock", ip)
    except FirewallError as e:
        logger.error(f"Error executing iptables command: {e}")
        raise HTTPException(
            status_code=500,
            detail=f"IP {ip} was removed from blocked IPs in the database, but the firewall command failed.",
        )

    logger.info(f"Successfully unblocked IP {ip} (requested by {user.id})")
    return BlockIpResponse(message=f"IP {ip} has been unblocked successfully")


@router.get("/blocked-ips", response_model=BlockedIpListResponse)
async def list_blocked_ips(
    user: Principal = Depends(get_current_user),
    store: RowStore = Depends(get_store),
):
    """List blocked IPs, newest first."""
    try:
        result = await store.select(BLOCKED_IPS, order_by="created_at", descending=True)
    except RowStoreError as e:
        logger.error(f"Error getting blocked IPs: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return BlockedIpListResponse(blocked_ips=[BlockedIpOut.model_validate(r) for r in result.rows])
