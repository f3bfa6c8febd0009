"""Queries de dispositivos, sensores y estadísticas globales."""

from __future__ import annotations

from typing import List

from sqlalchemy import text
from sqlalchemy.engine import Connection

from ..core.domain.resolution import Resolution
from ..core.storage.devices import find_device_id
from ..schemas import DeviceOut, SensorOut, StatsOut

DEFAULT_OFFLINE_SECONDS = 60


def derive_status(last_seen: int | None, now: int, offline_after_seconds: int) -> str:
    """``online`` si el último mensaje llegó dentro de la ventana de silencio."""
    if last_seen is None:
        return "offline"
    return "online" if now - int(last_seen) <= offline_after_seconds * 1000 else "offline"


def get_devices(
    conn: Connection,
    now: int,
    offline_after_seconds: int = DEFAULT_OFFLINE_SECONDS,
) -> List[DeviceOut]:
    """Dispositivos con estado derivado de ``last_seen``."""
    rows = conn.execute(
        text(
            """
            SELECT device_id, name, type, last_seen, location, description, created_at
            FROM devices
            ORDER BY last_seen DESC, device_id ASC
            """
        )
    ).fetchall()

    return [
        DeviceOut(
            device_id=int(row.device_id),
            name=str(row.name),
            type=str(row.type),
            status=derive_status(row.last_seen, now, offline_after_seconds),
            last_seen=row.last_seen,
            location=row.location,
            description=row.description,
            created_at=row.created_at,
        )
        for row in rows
    ]


def get_sensors(conn: Connection, device_ref: str) -> List[SensorOut]:
    device_id = find_device_id(conn, device_ref)
    if device_id is None:
        return []

    rows = conn.execute(
        text(
            """
            SELECT sensor_id, device_id, tag_name, data_type
            FROM sensors
            WHERE device_id = :device_id
            ORDER BY tag_name ASC
            """
        ),
        {"device_id": device_id},
    ).fetchall()

    return [
        SensorOut(
            sensor_id=int(row.sensor_id),
            device_id=int(row.device_id),
            tag_name=str(row.tag_name),
            data_type=str(row.data_type),
        )
        for row in rows
    ]


def get_stats(conn: Connection) -> StatsOut:
    """Conteos globales; el tamaño de la BD solo en PostgreSQL."""

    def count(table: str) -> int:
        return int(conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one() or 0)

    size_mb = None
    if conn.dialect.name == "postgresql":
        size_bytes = conn.execute(text("SELECT pg_database_size(current_database())")).scalar_one()
        size_mb = round(float(size_bytes) / 1024 / 1024, 2)

    return StatsOut(
        total_records=count("raw_history"),
        total_devices=count("devices"),
        total_sensors=count("sensors"),
        rollup_rows={r.label: count(r.table) for r in Resolution},
        database_size_mb=size_mb,
    )
