"""Procesador principal de lotes."""

from __future__ import annotations

import logging
from typing import Optional

from ..dedup.writer import ChangeFilteredWriter
from ..domain.batch import BatchResult, SampleBatch
from ..errors import StorageError
from ..fanout.notifier import FanoutNotifier
from ..identity.registry import IdentityRegistry
from ..monitoring.metrics import SAMPLES_PROCESSED

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Procesa lotes normalizados a través del pipeline completo.

    Pipeline:
    1. Resolución del dispositivo (alta/refresh de last_seen)
    2. Escritura filtrada por cambios de cada muestra
    3. Fan-out del lote (siempre, haya o no escrituras)
    """

    def __init__(
        self,
        registry: IdentityRegistry,
        writer: ChangeFilteredWriter,
        notifier: Optional[FanoutNotifier] = None,
    ):
        self._registry = registry
        self._writer = writer
        self._notifier = notifier or FanoutNotifier()

    @property
    def notifier(self) -> FanoutNotifier:
        return self._notifier

    def process(self, batch: SampleBatch) -> BatchResult:
        """Procesa un lote completo.

        Un fallo de almacenamiento se reporta en el resultado, nunca se
        propaga: el siguiente mensaje no se ve afectado.
        """
        result = BatchResult(device_ref=batch.device_ref, received=len(batch.samples))

        try:
            result.device_id = self._registry.resolve_device(batch.device_ref)
        except StorageError as e:
            result.failed = result.received
            result.errors.append(str(e))
            logger.error("[PIPELINE] Device resolution failed device=%s: %s", batch.device_ref, e)
        else:
            self._write_samples(batch, result)

        self._notifier.publish(batch)
        self._record_metrics(result)

        logger.debug(
            "[PIPELINE] device=%s received=%d written=%d suppressed=%d skipped=%d failed=%d",
            result.device_ref, result.received, result.written,
            result.suppressed, result.skipped, result.failed,
        )
        return result

    def _write_samples(self, batch: SampleBatch, result: BatchResult) -> None:
        for sample in batch.samples:
            outcome = self._writer.maybe_write(
                result.device_id, sample.tag, sample.value, sample.timestamp_ms
            )
            if outcome.written:
                result.written += 1
            elif outcome.skipped:
                result.skipped += 1
            elif outcome.error:
                result.failed += 1
                result.errors.append(f"{sample.tag}: {outcome.error}")
            else:
                result.suppressed += 1

    def register_device(
        self,
        device_ref: str,
        *,
        description: Optional[str] = None,
    ) -> Optional[int]:
        """Asegura que el dispositivo existe (mensajes de configuración)."""
        try:
            return self._registry.resolve_device(device_ref, description=description)
        except StorageError as e:
            logger.error("[PIPELINE] Device registration failed device=%s: %s", device_ref, e)
            return None

    @staticmethod
    def _record_metrics(result: BatchResult) -> None:
        for outcome, count in (
            ("written", result.written),
            ("suppressed", result.suppressed),
            ("skipped", result.skipped),
            ("failed", result.failed),
        ):
            if count:
                SAMPLES_PROCESSED.labels(outcome=outcome).inc(count)
