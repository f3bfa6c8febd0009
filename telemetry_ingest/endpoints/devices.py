"""Endpoints de dispositivos y sensores."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.engine import Connection

from ..core.clock import now_ms
from ..core.receiver import IngestReceiver
from ..queries import get_devices, get_latest_by_key, get_sensors
from ..schemas import DeviceList, LatestValue, SensorOut
from .deps import get_active_receiver, get_connection

router = APIRouter(prefix="/api/devices", tags=["devices"])


@router.get("", response_model=DeviceList)
def list_devices(
    conn: Connection = Depends(get_connection),
    receiver: IngestReceiver = Depends(get_active_receiver),
):
    """Dispositivos conocidos; ``status`` se deriva del tiempo sin mensajes."""
    devices = get_devices(conn, now_ms(), receiver.settings.device_offline_seconds)
    return DeviceList(total=len(devices), devices=devices)


@router.get("/{device_ref}/latest", response_model=List[LatestValue])
def latest_values(device_ref: str, conn: Connection = Depends(get_connection)):
    return get_latest_by_key(conn, device_ref)


@router.get("/{device_ref}/sensors", response_model=List[SensorOut])
def device_sensors(device_ref: str, conn: Connection = Depends(get_connection)):
    return get_sensors(conn, device_ref)
