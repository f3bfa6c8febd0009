"""Registro de identidad: referencia de dispositivo / tag → ids internos.

Mantiene un caché LRU de sensor_id (solo aciertos positivos) para el hot path.
Las altas son idempotentes: ``ON CONFLICT`` evita violaciones de unicidad
cuando dos hilos ven el mismo dispositivo o tag por primera vez.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Callable, Optional, Tuple, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..clock import now_ms
from ..errors import StorageError
from ..locks import KeyedLocks
from ..storage.devices import find_device_id, normalize_ref

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_TYPE = "HMI"
DEFAULT_DATA_TYPE = "DOUBLE"
MAX_SENSOR_CACHE_SIZE = 10000


_TOUCH_DEVICE = text(
    """
    UPDATE devices
    SET status = 'online',
        last_seen = :now,
        type = COALESCE(:device_type, type),
        location = COALESCE(:location, location),
        description = COALESCE(:description, description)
    WHERE device_id = :device_id
    """
)

_INSERT_DEVICE = text(
    """
    INSERT INTO devices (name, type, status, last_seen, location, description, created_at)
    VALUES (:name, COALESCE(:device_type, 'HMI'), 'online', :now, :location, :description, :now)
    ON CONFLICT (name) DO UPDATE SET
        status = 'online',
        last_seen = excluded.last_seen,
        type = COALESCE(:device_type, devices.type),
        location = COALESCE(excluded.location, devices.location),
        description = COALESCE(excluded.description, devices.description)
    """
)

_INSERT_SENSOR = text(
    """
    INSERT INTO sensors (device_id, tag_name, data_type, created_at)
    VALUES (:device_id, :tag_name, :data_type, :now)
    ON CONFLICT (device_id, tag_name) DO NOTHING
    """
)

_SELECT_SENSOR = text(
    "SELECT sensor_id FROM sensors WHERE device_id = :device_id AND tag_name = :tag_name"
)


class IdentityRegistry:
    """Resuelve dispositivos y sensores contra la BD.

    Args:
        engine: Engine SQLAlchemy
        clock: Función que devuelve "ahora" en ms Unix (inyectable en tests)
        max_cache_size: Límite del caché LRU de sensores
    """

    def __init__(
        self,
        engine: Engine,
        clock: Callable[[], int] = now_ms,
        max_cache_size: int = MAX_SENSOR_CACHE_SIZE,
    ):
        self._engine = engine
        self._clock = clock
        self._max_cache_size = max_cache_size
        self._locks = KeyedLocks()
        self._cache_lock = threading.Lock()
        self._sensor_cache: OrderedDict[Tuple[int, str], int] = OrderedDict()

    def find_device(self, ref: Union[str, int]) -> Optional[int]:
        """Busca un dispositivo sin crearlo."""
        try:
            with self._engine.connect() as conn:
                return find_device_id(conn, ref)
        except SQLAlchemyError as e:
            raise StorageError(f"Device lookup failed for {ref!r}: {e}") from e

    def resolve_device(
        self,
        ref: Union[str, int],
        *,
        device_type: Optional[str] = None,
        location: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        """Devuelve el device_id, creando el dispositivo si no existe.

        Siempre marca el dispositivo como ``online`` con ``last_seen = ahora``.
        Los metadatos opcionales solo se escriben si vienen informados.

        Raises:
            StorageError: fallo de BD
        """
        key = normalize_ref(ref)
        if not key:
            raise ValueError("Device reference is empty")

        params = {
            "now": self._clock(),
            "device_type": device_type,
            "location": location,
            "description": description,
        }

        with self._locks.hold(("device", key)):
            try:
                with self._engine.begin() as conn:
                    device_id = find_device_id(conn, key)
                    if device_id is not None:
                        conn.execute(_TOUCH_DEVICE, {**params, "device_id": device_id})
                        return device_id

                    conn.execute(_INSERT_DEVICE, {**params, "name": key})
                    device_id = find_device_id(conn, key)
            except SQLAlchemyError as e:
                logger.error("[REGISTRY] Device resolution failed ref=%s: %s", key, e)
                raise StorageError(f"Device resolution failed for {key!r}: {e}") from e

        if device_id is None:
            raise StorageError(f"Device {key!r} not found after insert")

        logger.info("[REGISTRY] Registered device ref=%s device_id=%s", key, device_id)
        return device_id

    def resolve_sensor(
        self,
        device_id: int,
        tag_name: str,
        data_type: str = DEFAULT_DATA_TYPE,
    ) -> int:
        """Devuelve el sensor_id del tag, creándolo si no existe.

        Raises:
            StorageError: fallo de BD
        """
        cache_key = (int(device_id), tag_name)
        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        with self._locks.hold(("sensor",) + cache_key):
            # Otro hilo pudo resolverlo mientras esperábamos el lock.
            cached = self._cache_get(cache_key)
            if cached is not None:
                return cached

            params = {
                "device_id": cache_key[0],
                "tag_name": tag_name,
                "data_type": data_type,
                "now": self._clock(),
            }
            try:
                with self._engine.begin() as conn:
                    conn.execute(_INSERT_SENSOR, params)
                    row = conn.execute(_SELECT_SENSOR, params).fetchone()
            except SQLAlchemyError as e:
                logger.error(
                    "[REGISTRY] Sensor resolution failed device_id=%s tag=%s: %s",
                    device_id, tag_name, e,
                )
                raise StorageError(f"Sensor resolution failed for {tag_name!r}: {e}") from e

            if row is None:
                raise StorageError(f"Sensor {tag_name!r} not found after insert")

            sensor_id = int(row[0])
            self._cache_put(cache_key, sensor_id)
            return sensor_id

    def _cache_get(self, key: Tuple[int, str]) -> Optional[int]:
        with self._cache_lock:
            sensor_id = self._sensor_cache.get(key)
            if sensor_id is not None:
                self._sensor_cache.move_to_end(key)
            return sensor_id

    def _cache_put(self, key: Tuple[int, str], sensor_id: int) -> None:
        with self._cache_lock:
            self._sensor_cache[key] = sensor_id
            self._sensor_cache.move_to_end(key)
            while len(self._sensor_cache) > self._max_cache_size:
                self._sensor_cache.popitem(last=False)

    @property
    def cache_size(self) -> int:
        with self._cache_lock:
            return len(self._sensor_cache)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._sensor_cache.clear()
