"""Storage layer - Esquema y consultas SQL compartidas."""

from .devices import find_device_id, normalize_ref
from .schema import (
    command_history,
    devices,
    ensure_schema,
    metadata,
    raw_history,
    rollup_tables,
    sensors,
)

__all__ = [
    "command_history",
    "devices",
    "ensure_schema",
    "find_device_id",
    "metadata",
    "normalize_ref",
    "raw_history",
    "rollup_tables",
    "sensors",
]
