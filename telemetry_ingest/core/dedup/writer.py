"""Escritor con filtro de cambios.

Solo persiste una muestra cuando su valor difiere del último observado para
el mismo (device_id, tag). El primer valor visto siempre se escribe.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import StorageError
from ..locks import KeyedLocks
from .value_store import CacheKey, InMemoryLastValueStore, LastValueStore

logger = logging.getLogger(__name__)

QUALITY_GOOD = 1

SensorResolver = Callable[[int, str, str], int]

_UPSERT_RAW = text(
    """
    INSERT INTO raw_history (sensor_id, "timestamp", value, quality)
    VALUES (:sensor_id, :ts, :value, :quality)
    ON CONFLICT (sensor_id, "timestamp") DO UPDATE SET
        value = excluded.value,
        quality = excluded.quality
    """
)


@dataclass(frozen=True)
class WriteResult:
    """Resultado de ``maybe_write``.

    - written: se persistió una fila en raw_history
    - changed: el valor difería del último observado
    - error: mensaje del fallo de persistencia (None si no hubo)
    - skipped: el valor no es numérico y no se persiste
    """
    written: bool
    changed: bool
    error: Optional[str] = None
    skipped: bool = False


def coerce_numeric(value: Any) -> Optional[float]:
    """Convierte el valor a float para la columna numérica.

    bool → 1.0/0.0; texto numérico → float; resto (o no finito) → None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def data_type_for(value: Any) -> str:
    return "BOOL" if isinstance(value, bool) else "DOUBLE"


class ChangeFilteredWriter:
    """Persistencia de muestras crudas con deduplicación por valor.

    Args:
        engine: Engine SQLAlchemy
        resolve_sensor: Función (device_id, tag, data_type) → sensor_id;
            solo se invoca cuando hay que escribir
        store: Cache de últimos valores (por defecto en memoria)
    """

    def __init__(
        self,
        engine: Engine,
        resolve_sensor: SensorResolver,
        store: Optional[LastValueStore] = None,
    ):
        self._engine = engine
        self._resolve_sensor = resolve_sensor
        self._store = store if store is not None else InMemoryLastValueStore()
        self._locks = KeyedLocks()

        self._stats_lock = threading.Lock()
        self._written = 0
        self._suppressed = 0
        self._skipped = 0
        self._failed = 0

    def maybe_write(
        self,
        device_id: int,
        tag: str,
        value: Any,
        timestamp_ms: int,
    ) -> WriteResult:
        """Escribe la muestra si el valor cambió.

        El cache se actualiza ANTES de persistir y no se revierte si la
        escritura falla: el siguiente valor idéntico se suprime igualmente.
        """
        key: CacheKey = (int(device_id), tag)
        numeric = coerce_numeric(value)
        if numeric is None:
            # El último valor observado ya no es el numérico guardado: el
            # siguiente valor numérico cuenta como cambio.
            with self._locks.hold(key):
                self._delete_cache(key)
            self._count(skipped=1)
            return WriteResult(written=False, changed=False, skipped=True)

        with self._locks.hold(key):
            previous = self._read_cache(key)
            if previous is not None and previous == numeric:
                self._count(suppressed=1)
                return WriteResult(written=False, changed=False)

            self._write_cache(key, numeric)

            try:
                sensor_id = self._resolve_sensor(key[0], tag, data_type_for(value))
                with self._engine.begin() as conn:
                    conn.execute(
                        _UPSERT_RAW,
                        {
                            "sensor_id": sensor_id,
                            "ts": int(timestamp_ms),
                            "value": numeric,
                            "quality": QUALITY_GOOD,
                        },
                    )
            except (StorageError, SQLAlchemyError) as e:
                self._count(failed=1)
                logger.error(
                    "[WRITER] Persist failed device_id=%s tag=%s: %s",
                    device_id, tag, e,
                )
                return WriteResult(written=False, changed=True, error=str(e))

        self._count(written=1)
        return WriteResult(written=True, changed=True)

    def _read_cache(self, key: CacheKey) -> Optional[float]:
        # Un cache caído se trata como ausencia: se escribe de más, nunca de menos.
        try:
            return self._store.get(key)
        except StorageError as e:
            logger.warning("[WRITER] Last-value cache read failed: %s", e)
            return None

    def _write_cache(self, key: CacheKey, value: float) -> None:
        try:
            self._store.set(key, value)
        except StorageError as e:
            logger.warning("[WRITER] Last-value cache write failed: %s", e)

    def _delete_cache(self, key: CacheKey) -> None:
        try:
            self._store.delete(key)
        except StorageError as e:
            logger.warning("[WRITER] Last-value cache delete failed: %s", e)

    def _count(self, written: int = 0, suppressed: int = 0, skipped: int = 0, failed: int = 0) -> None:
        with self._stats_lock:
            self._written += written
            self._suppressed += suppressed
            self._skipped += skipped
            self._failed += failed

    @property
    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return {
                "written": self._written,
                "suppressed": self._suppressed,
                "skipped": self._skipped,
                "failed": self._failed,
            }
