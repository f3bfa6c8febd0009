"""Dispatcher asíncrono: desacopla el callback de paho del procesamiento.

El hilo de red de paho solo encola (~0.01ms). N workers procesan en
paralelo; cada mensaje va a la cola del worker que le corresponde por
``hash(device_ref)``, así los mensajes de un mismo dispositivo se procesan
en orden.
"""

from __future__ import annotations

import logging
import queue
import threading
import zlib
from typing import Any, Callable, List, Optional

from ..monitoring.metrics import QUEUE_DEPTH

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4

_STOP = object()


def partition_for(key: str, num_partitions: int) -> int:
    """Partición estable entre procesos (no usa ``hash()`` aleatorizado)."""
    return zlib.crc32(key.encode("utf-8")) % num_partitions


class MessageDispatcher:
    """Colas por worker + hilos de procesamiento.

    - enqueue() nunca bloquea; con la cola llena el mensaje se descarta
    - Cada worker consume solo su cola
    """

    def __init__(
        self,
        handler: Callable[[Any], Any],
        num_workers: int = DEFAULT_NUM_WORKERS,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        if num_workers < 1:
            raise ValueError("num_workers must be >= 1")
        self._handler = handler
        self._num_workers = num_workers
        # Capacidad total repartida entre las colas.
        per_worker = max(1, max_queue_size // num_workers)
        self._queues: List[queue.Queue] = [queue.Queue(maxsize=per_worker) for _ in range(num_workers)]
        self._workers: List[threading.Thread] = []

        self._enqueued = 0
        self._dropped = 0
        self._processed = 0
        self._errors = 0
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._workers)

    def start(self) -> None:
        if self.is_running:
            return
        self._workers = []
        for i in range(self._num_workers):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"ingest-worker-{i}",
            )
            t.start()
            self._workers.append(t)
        logger.info(
            "[DISPATCHER] Started workers=%d queue_max=%d",
            self._num_workers, self._queues[0].maxsize * self._num_workers,
        )

    def stop(self, drain: bool = True, timeout: float = 5.0) -> None:
        """Detiene los workers. Con drain=True procesa lo pendiente antes."""
        if not self._workers:
            return
        if not drain:
            for q in self._queues:
                self._clear(q)
        for q in self._queues:
            # Bloqueante: el sentinel debe entrar aunque la cola esté llena.
            q.put(_STOP)
        for t in self._workers:
            t.join(timeout=timeout)
        self._workers = []
        QUEUE_DEPTH.set(0)
        logger.info("[DISPATCHER] Stopped. %s", self.metrics)

    def enqueue(self, key: str, item: Any) -> bool:
        """Encola ``item`` en la partición de ``key``. False si está llena."""
        q = self._queues[partition_for(key or "", self._num_workers)]
        try:
            q.put_nowait(item)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            logger.warning("[DISPATCHER] Queue full, dropped message device=%s", key)
            return False

        with self._lock:
            self._enqueued += 1
        QUEUE_DEPTH.inc()
        return True

    def _worker_loop(self, worker_id: int) -> None:
        q = self._queues[worker_id]
        while True:
            item = q.get()
            if item is _STOP:
                q.task_done()
                return
            QUEUE_DEPTH.dec()
            try:
                self._handler(item)
                with self._lock:
                    self._processed += 1
            except Exception as e:
                with self._lock:
                    self._errors += 1
                logger.exception("[DISPATCHER] Worker %d error: %s", worker_id, e)
            finally:
                q.task_done()

    def join(self) -> None:
        """Espera a que todo lo encolado hasta ahora se haya procesado."""
        for q in self._queues:
            q.join()

    @staticmethod
    def _clear(q: queue.Queue) -> None:
        while True:
            try:
                q.get_nowait()
            except queue.Empty:
                return
            QUEUE_DEPTH.dec()
            q.task_done()

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "queue_depth": sum(q.qsize() for q in self._queues),
                "queue_max": sum(q.maxsize for q in self._queues),
                "workers": self._num_workers,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
                "processed": self._processed,
                "errors": self._errors,
            }


def create_dispatcher(
    handler: Callable[[Any], Any],
    num_workers: Optional[int] = None,
    max_queue_size: Optional[int] = None,
) -> MessageDispatcher:
    """Factory: crea y arranca un dispatcher."""
    dispatcher = MessageDispatcher(
        handler,
        num_workers=num_workers or DEFAULT_NUM_WORKERS,
        max_queue_size=max_queue_size or DEFAULT_QUEUE_SIZE,
    )
    dispatcher.start()
    return dispatcher
