"""Agregación multi-resolución de raw_history → tablas de buckets.

Cada tick recomputa los dos últimos buckets cerrados de su resolución:

    [floor(now, W) - 2W, floor(now, W))

El bucket abierto nunca se escribe y la ventana está alineada a bordes de
bucket, así que cada bucket recomputado contiene todas sus muestras. El
upsert pisa avg/min/max/count sin condiciones: repetir un tick no cambia
nada y un tick perdido se recupera en el siguiente.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from ..clock import now_ms
from ..domain.resolution import Resolution
from ..errors import StorageError
from ..monitoring.metrics import ROLLUP_TICK_DURATION

logger = logging.getLogger(__name__)


def _build_rollup_sql(resolution: Resolution) -> TextClause:
    # Tabla y ancho salen del enum, nunca de entrada externa.
    width = resolution.width_ms
    return text(
        f"""
        INSERT INTO {resolution.table}
            (sensor_id, bucket_start, avg_value, min_value, max_value, sample_count)
        SELECT
            sensor_id,
            ("timestamp" / {width}) * {width} AS bucket,
            AVG(value),
            MIN(value),
            MAX(value),
            COUNT(value)
        FROM raw_history
        WHERE "timestamp" >= :window_start
          AND "timestamp" < :window_end
          AND value IS NOT NULL
        GROUP BY sensor_id, bucket
        ON CONFLICT (sensor_id, bucket_start) DO UPDATE SET
            avg_value = excluded.avg_value,
            min_value = excluded.min_value,
            max_value = excluded.max_value,
            sample_count = excluded.sample_count
        """
    )


_ROLLUP_SQL: Dict[Resolution, TextClause] = {r: _build_rollup_sql(r) for r in Resolution}


def rollup_window(resolution: Resolution, now: int) -> Tuple[int, int]:
    """Ventana [inicio, fin) de buckets a recomputar para ``now`` (ms)."""
    window_end = resolution.bucket_start(now)
    return window_end - resolution.lookback_ms, window_end


@dataclass
class TickStats:
    resolution: str
    ticks: int = 0
    last_run_ms: Optional[int] = None
    last_rows: int = 0
    last_duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "resolution": self.resolution,
            "ticks": self.ticks,
            "last_run_ms": self.last_run_ms,
            "last_rows": self.last_rows,
            "last_duration_ms": round(self.last_duration_ms, 2),
        }


class RollupAggregator:
    """Recalcula buckets de una resolución leyendo solo raw_history.

    Args:
        engine: Engine SQLAlchemy
        clock: "ahora" en ms Unix (inyectable en tests)
    """

    def __init__(self, engine: Engine, clock: Callable[[], int] = now_ms):
        self._engine = engine
        self._clock = clock
        self._lock = threading.Lock()
        self._stats: Dict[Resolution, TickStats] = {
            r: TickStats(resolution=r.label) for r in Resolution
        }

    def run_tick(self, resolution: Resolution, now: Optional[int] = None) -> int:
        """Recomputa la ventana de ``resolution``.

        Returns:
            Filas upsertadas (buckets x sensores)

        Raises:
            StorageError: fallo de BD
        """
        now = self._clock() if now is None else now
        window_start, window_end = rollup_window(resolution, now)

        started = time.perf_counter()
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    _ROLLUP_SQL[resolution],
                    {"window_start": window_start, "window_end": window_end},
                )
                rows = max(result.rowcount or 0, 0)
        except SQLAlchemyError as e:
            raise StorageError(f"Rollup {resolution.label} failed: {e}") from e

        elapsed = time.perf_counter() - started
        ROLLUP_TICK_DURATION.labels(resolution=resolution.label).observe(elapsed)

        with self._lock:
            stats = self._stats[resolution]
            stats.ticks += 1
            stats.last_run_ms = now
            stats.last_rows = rows
            stats.last_duration_ms = elapsed * 1000

        logger.debug(
            "[ROLLUP] %s window=[%d, %d) rows=%d elapsed=%.1fms",
            resolution.label, window_start, window_end, rows, elapsed * 1000,
        )
        return rows

    def run_all(self, now: Optional[int] = None) -> Dict[str, int]:
        """Un tick de cada resolución (útil para jobs puntuales)."""
        now = self._clock() if now is None else now
        return {r.label: self.run_tick(r, now) for r in Resolution}

    def get_stats(self) -> Dict[str, dict]:
        with self._lock:
            return {r.label: s.to_dict() for r, s in self._stats.items()}
