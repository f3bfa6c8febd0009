"""Consultas compartidas sobre la tabla devices."""

from __future__ import annotations

from typing import Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import Connection

# Coincidencia por nombre gana sobre coincidencia por id.
FIND_DEVICE_SQL = text(
    """
    SELECT device_id
    FROM devices
    WHERE name = :ref OR CAST(device_id AS TEXT) = :ref
    ORDER BY CASE WHEN name = :ref THEN 0 ELSE 1 END
    LIMIT 1
    """
)


def normalize_ref(ref: Union[str, int]) -> str:
    """``7`` y ``"7"`` son la misma referencia."""
    if isinstance(ref, bool):
        raise TypeError("Device reference cannot be a boolean")
    return str(ref).strip()


def find_device_id(conn: Connection, ref: Union[str, int]) -> Optional[int]:
    """Busca el device_id por nombre o id textual, sin crear nada."""
    row = conn.execute(FIND_DEVICE_SQL, {"ref": normalize_ref(ref)}).fetchone()
    return int(row[0]) if row else None
