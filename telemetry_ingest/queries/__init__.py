"""Módulo de queries para consultas a BD.

Contiene funciones puras de consulta sin lógica de negocio.
"""

from .devices import derive_status, get_devices, get_sensors, get_stats
from .history import (
    get_historical_data,
    get_historical_data_paginated,
    get_latest_by_key,
    get_rollup,
)

__all__ = [
    "derive_status",
    "get_devices",
    "get_historical_data",
    "get_historical_data_paginated",
    "get_latest_by_key",
    "get_rollup",
    "get_sensors",
    "get_stats",
]
