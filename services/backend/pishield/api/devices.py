"""
PiShield v1 - Device Routes
"""

from datetime import datetime, timedelta, timezone
from typing import List

from fastapi import APIRouter

from pishield.schemas import Device, DeviceListResponse
from pishield.security import current_user_dependency

router = APIRouter(prefix="/api/devices", tags=["devices"], dependencies=[current_user_dependency])

# (id, name, ip, mac, type, online)
KNOWN_DEVICES = (
    ("1", "Router", "192.168.1.1", "00:1A:2B:3C:4D:5E", "network", True),
    ("2", "Smart TV", "192.168.1.101", "AA:BB:CC:DD:EE:FF", "iot", True),
    ("3", "Laptop", "192.168.1.102", "11:22:33:44:55:66", "computer", True),
    ("4", "Smartphone", "192.168.1.103", "AA:BB:CC:11:22:33", "mobile", True),
    ("5", "Smart Speaker", "192.168.1.104", "FF:EE:DD:CC:BB:AA", "iot", False),
)

OFFLINE_LAST_SEEN = timedelta(hours=1)


def list_known_devices(now: datetime) -> List[Device]:
    """Fixed demo inventory; offline devices were last seen an hour ago."""
    return [
        Device(
            id=device_id,
            name=name,
            ip=ip,
            mac=mac,
            type=kind,
            last_seen=now if online else now - OFFLINE_LAST_SEEN,
            status="online" if online else "offline",
        )
        for device_id, name, ip, mac, kind, online in KNOWN_DEVICES
    ]


@router.get("", response_model=DeviceListResponse)
async def list_devices():
    """Devices on the protected network."""
    # TODO: read a device inventory table once devices are tracked
    return DeviceListResponse(devices=list_known_devices(datetime.now(timezone.utc)))
