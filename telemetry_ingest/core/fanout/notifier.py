"""Notificador fan-out de lotes normalizados.

Entrega síncrona, en orden de registro. Un observador que falla se loggea y
se cuenta; el resto recibe el lote igualmente.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List

from ..domain.batch import SampleBatch
from ..monitoring.metrics import OBSERVER_FAILURES

logger = logging.getLogger(__name__)

Observer = Callable[[SampleBatch], Any]


class FanoutNotifier:
    """Publica cada lote a todos los observadores registrados."""

    def __init__(self) -> None:
        self._observers: List[Observer] = []
        self._lock = threading.Lock()
        self.published = 0
        self.failures = 0

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Registra un observador.

        Returns:
            Función que lo desregistra (idempotente)
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._observers.remove(observer)
                except ValueError:
                    pass

        return unsubscribe

    def publish(self, batch: SampleBatch) -> int:
        """Entrega el lote a cada observador.

        Returns:
            Número de observadores que fallaron
        """
        # Copia: un observador puede (des)suscribir durante la entrega.
        with self._lock:
            observers = list(self._observers)

        failed = 0
        for observer in observers:
            try:
                observer(batch)
            except Exception as e:
                failed += 1
                OBSERVER_FAILURES.inc()
                logger.error(
                    "[FANOUT] Observer %r failed for device=%s: %s",
                    observer, batch.device_ref, e,
                )

        with self._lock:
            self.published += 1
            self.failures += failed
        return failed

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)
