"""Resoluciones de agregación (rollups)."""

from __future__ import annotations

from enum import Enum


class Resolution(Enum):
    """Granularidades fijas de agregación.

    Cada valor es (nombre, ancho del bucket en segundos, tabla destino).
    """
    ONE_MINUTE = ("1min", 60, "sensor_history_1min")
    FIVE_MINUTES = ("5min", 300, "sensor_history_5min")
    TEN_MINUTES = ("10min", 600, "sensor_history_10min")
    ONE_HOUR = ("1hour", 3600, "sensor_history_1hour")

    def __init__(self, label: str, width_seconds: int, table: str):
        self.label = label
        self.width_seconds = width_seconds
        self.table = table

    @property
    def width_ms(self) -> int:
        return self.width_seconds * 1000

    @property
    def lookback_ms(self) -> int:
        """Ventana de recomputo: dos buckets completos."""
        return 2 * self.width_ms

    @property
    def default_limit(self) -> int:
        return 24 if self is Resolution.ONE_HOUR else 100

    def bucket_start(self, timestamp_ms: int) -> int:
        """Trunca un timestamp al inicio de su bucket."""
        return (timestamp_ms // self.width_ms) * self.width_ms

    @classmethod
    def from_label(cls, label: str) -> "Resolution":
        for resolution in cls:
            if resolution.label == label:
                return resolution
        raise ValueError(f"Unknown resolution: {label}")
