"""Estadísticas de procesamiento."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..domain.batch import BatchResult


@dataclass
class Stats:
    """Estadísticas de procesamiento de mensajes.

    Los workers del dispatcher actualizan en paralelo: usar los métodos
    ``record_*`` en lugar de tocar los campos directamente.
    """

    received: int = 0
    processed: int = 0
    parse_errors: int = 0
    invalid: int = 0
    failed: int = 0
    samples_written: int = 0
    samples_suppressed: int = 0
    samples_skipped: int = 0
    samples_failed: int = 0
    last_message_at: float = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __str__(self) -> str:
        return (
            f"Stats: received={self.received} processed={self.processed} "
            f"invalid={self.invalid + self.parse_errors} failed={self.failed} "
            f"written={self.samples_written} suppressed={self.samples_suppressed}"
        )

    def record_received(self, at: float) -> None:
        with self._lock:
            self.received += 1
            self.last_message_at = at

    def record_parse_error(self) -> None:
        with self._lock:
            self.parse_errors += 1

    def record_invalid(self) -> None:
        with self._lock:
            self.invalid += 1

    def record_failure(self) -> None:
        with self._lock:
            self.failed += 1

    def record_batch(self, result: BatchResult) -> None:
        with self._lock:
            if result.ok:
                self.processed += 1
            else:
                self.failed += 1
            self.samples_written += result.written
            self.samples_suppressed += result.suppressed
            self.samples_skipped += result.skipped
            self.samples_failed += result.failed

    def to_dict(self) -> dict:
        """Convierte a diccionario."""
        with self._lock:
            return {
                "received": self.received,
                "processed": self.processed,
                "parse_errors": self.parse_errors,
                "invalid": self.invalid,
                "failed": self.failed,
                "samples_written": self.samples_written,
                "samples_suppressed": self.samples_suppressed,
                "samples_skipped": self.samples_skipped,
                "samples_failed": self.samples_failed,
                "last_message_at": self.last_message_at,
                "started_at": self.started_at.isoformat(),
                "success_rate": self._success_rate(),
            }

    def _success_rate(self) -> float:
        total = self.processed + self.failed
        if total == 0:
            return 1.0
        return self.processed / total
