"""Modelo de dominio para lotes de muestras normalizadas."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

SampleValue = Union[int, float, str, bool, None]


@dataclass(frozen=True)
class Sample:
    """Una variable (tag) leída del HMI en un instante dado."""
    tag: str
    value: SampleValue
    timestamp_ms: int


@dataclass(frozen=True)
class SampleBatch:
    """Lote normalizado - contrato único que fluye por el pipeline.

    MQTT → Normalizer → Registry → Writer → Fan-out
    """
    device_ref: str
    samples: Tuple[Sample, ...]
    protocol_version: str
    timestamp_ms: int
    topic: str = ""
    source_name: Optional[str] = None
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        """Convierte a formato serializable (observadores externos)."""
        return {
            "deviceRef": self.device_ref,
            "topic": self.topic,
            "sourceName": self.source_name,
            "version": self.protocol_version,
            "timestamp": self.timestamp_ms,
            "samples": [
                {"tag": s.tag, "value": s.value, "timestamp": s.timestamp_ms}
                for s in self.samples
            ],
        }


@dataclass
class BatchResult:
    """Resultado de procesar un lote a través del pipeline."""
    device_ref: str
    device_id: Optional[int] = None
    received: int = 0
    written: int = 0
    suppressed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_ref": self.device_ref,
            "device_id": self.device_id,
            "received": self.received,
            "written": self.written,
            "suppressed": self.suppressed,
            "skipped": self.skipped,
            "failed": self.failed,
        }
