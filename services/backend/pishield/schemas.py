"""
PiShield v1 - Pydantic Schemas

Wire payloads use camelCase keys; model attributes stay snake_case.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


IPV4_PATTERN = re.compile(
    r"^(25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\."
    r"(25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\."
    r"(25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\."
    r"(25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$"
)


def is_valid_ipv4(value: str) -> bool:
    """Strict dotted-quad check (four octets, each 0-255)."""
    return bool(value) and IPV4_PATTERN.fullmatch(value) is not None


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertStatus(str, Enum):
    NEW = "new"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =====================================================
# Alerts
# =====================================================

class AlertOut(CamelModel):
    """Alert as returned to clients."""
    id: str
    timestamp: datetime
    severity: str
    type: str
    source_ip: str
    dest_port: Optional[int] = None
    status: str
    details: Optional[str] = None
    updated_at: Optional[datetime] = None


class AlertCreate(CamelModel):
    """Payload for manual/scripted alert creation."""
    severity: Severity
    type: str = Field(min_length=1)
    source_ip: str
    dest_port: Optional[int] = Field(default=None, ge=0, le=65535)
    status: AlertStatus = AlertStatus.NEW
    details: Optional[str] = None
    timestamp: Optional[datetime] = None

    @field_validator("source_ip")
    @classmethod
    def _check_source_ip(cls, value: str) -> str:
        if not is_valid_ipv4(value):
            raise ValueError("Invalid IP address format")
        return value


class AlertStatusUpdate(CamelModel):
    status: AlertStatus


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class AlertListResponse(CamelModel):
    alerts: List[AlertOut]
    pagination: Pagination


class AlertResponse(CamelModel):
    alert: AlertOut


# =====================================================
# Blocked IPs
# =====================================================

class BlockIpRequest(CamelModel):
    ip: str
    reason: Optional[str] = None
    expires_at: Optional[datetime] = None

    @field_validator("ip")
    @classmethod
    def _check_ip(cls, value: str) -> str:
        if not is_valid_ipv4(value):
            raise ValueError("Invalid IP address format")
        return value


class UnblockIpRequest(CamelModel):
    ip: str = Field(min_length=1)


class BlockedIpOut(CamelModel):
    id: str
    ip_address: str
    blocked_by_user_id: str
    reason: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime


class BlockIpResponse(CamelModel):
    success: bool = True
    message: str
    blocked_ip: Optional[BlockedIpOut] = None


class BlockedIpListResponse(CamelModel):
    blocked_ips: List[BlockedIpOut]


# =====================================================
# Dashboard
# =====================================================

class DashboardStats(CamelModel):
    """Derived dashboard summary; never stored."""
    attacks_blocked: int
    active_alerts: int
    risk_level: RiskLevel
    device_count: int
    blocked_ip_count: int


class Device(CamelModel):
    """Network device shown on the dashboard device list."""
    id: str
    name: str
    ip: str
    mac: str
    type: str
    last_seen: datetime
    status: str


class DeviceListResponse(CamelModel):
    devices: List[Device]


class AttackSource(CamelModel):
    id: str
    source_ip: str
    country: Optional[str] = None
    timestamp: datetime
    severity: str

    @classmethod
    def from_alert(cls, alert: AlertOut) -> "AttackSource":
        # No geo lookup is wired in; country stays unknown
        return cls(
            id=alert.id,
            source_ip=alert.source_ip,
            timestamp=alert.timestamp,
            severity=alert.severity,
        )


class ChartPoint(CamelModel):
    date: str
    attacks: int


# =====================================================
# Auth
# =====================================================

class LoginRequest(CamelModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SignupRequest(LoginRequest):
    name: Optional[str] = None


class LoginResponse(CamelModel):
    user: Dict[str, Any]
    token: str
    refresh_token: Optional[str] = None


class UserResponse(CamelModel):
    user: Dict[str, Any]


# =====================================================
# System
# =====================================================

class HealthResponse(CamelModel):
    """Health check response."""
    status: str = "ok"
    timestamp: str


class MessageResponse(CamelModel):
    message: str
