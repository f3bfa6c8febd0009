"""Planificador de tareas periódicas (un hilo por tarea).

Cada tarea ejecuta su primer tick al arrancar y luego uno cada ``interval``
segundos. Un tick que lanza excepción se loggea y la agenda continúa.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..domain.resolution import Resolution
from ..monitoring.metrics import ROLLUP_TICK_FAILURES
from .aggregator import RollupAggregator

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Tarea con nombre ejecutada periódicamente en su propio hilo.

    Args:
        name: Identificador (aparece en logs y stats)
        interval: Segundos entre ticks
        action: Callable sin argumentos
    """

    def __init__(self, name: str, interval: float, action: Callable[[], Any]):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._action = action
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        # Tomado durante cada tick; stop() lo usa para esperar al tick en curso.
        self._tick_lock = threading.Lock()

        self.ticks = 0
        self.failures = 0
        self.last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name=f"periodic-{self.name}",
            daemon=True,
        )
        self._thread.start()
        logger.info("[SCHEDULER] Task %s started (every %.0fs)", self.name, self.interval)

    def request_stop(self) -> None:
        """Pide la parada sin esperar."""
        self._stop_event.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Detiene la tarea; un tick en curso termina antes de volver."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        # Si el join agotó el timeout, esperar igualmente al tick en curso.
        with self._tick_lock:
            pass
        logger.info("[SCHEDULER] Task %s stopped after %d ticks", self.name, self.ticks)

    def run_once(self) -> bool:
        """Ejecuta un tick dentro de la barrera de fallos.

        Returns:
            True si el tick terminó sin excepción
        """
        with self._tick_lock:
            try:
                self._action()
                self.ticks += 1
                return True
            except Exception as e:
                self.failures += 1
                self.last_error = str(e)
                ROLLUP_TICK_FAILURES.labels(task=self.name).inc()
                logger.exception("[SCHEDULER] Task %s tick failed: %s", self.name, e)
                return False

    def _loop(self) -> None:
        self.run_once()
        while not self._stop_event.wait(self.interval):
            self.run_once()

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "interval_seconds": self.interval,
            "running": self.is_running,
            "ticks": self.ticks,
            "failures": self.failures,
            "last_error": self.last_error,
        }


class JobScheduler:
    """Conjunto de PeriodicTask con nombre."""

    def __init__(self) -> None:
        self._tasks: Dict[str, PeriodicTask] = {}
        self._lock = threading.Lock()

    def add(self, task: PeriodicTask) -> PeriodicTask:
        with self._lock:
            if task.name in self._tasks:
                raise ValueError(f"Task already registered: {task.name}")
            self._tasks[task.name] = task
        return task

    def get(self, name: str) -> Optional[PeriodicTask]:
        with self._lock:
            return self._tasks.get(name)

    @property
    def task_names(self) -> List[str]:
        with self._lock:
            return list(self._tasks)

    def start(self, name: str) -> None:
        self._require(name).start()

    def stop(self, name: str, timeout: Optional[float] = None) -> None:
        self._require(name).stop(timeout=timeout)

    def start_all(self) -> None:
        for task in self._snapshot():
            task.start()

    def stop_all(self, timeout: Optional[float] = None) -> None:
        """Detiene todas las tareas esperando a los ticks en curso."""
        tasks = self._snapshot()
        for task in tasks:
            task.request_stop()
        for task in tasks:
            task.stop(timeout=timeout)

    def get_stats(self) -> Dict[str, dict]:
        return {task.name: task.get_stats() for task in self._snapshot()}

    def _snapshot(self) -> List[PeriodicTask]:
        with self._lock:
            return list(self._tasks.values())

    def _require(self, name: str) -> PeriodicTask:
        task = self.get(name)
        if task is None:
            raise KeyError(f"Unknown task: {name}")
        return task


def rollup_task_name(resolution: Resolution) -> str:
    return f"rollup-{resolution.label}"


def build_rollup_scheduler(
    aggregator: RollupAggregator,
    resolutions: Optional[Iterable[Resolution]] = None,
) -> JobScheduler:
    """Una tarea por resolución, con periodo igual al ancho del bucket."""
    scheduler = JobScheduler()
    for resolution in (resolutions or Resolution):
        scheduler.add(
            PeriodicTask(
                name=rollup_task_name(resolution),
                interval=resolution.width_seconds,
                action=lambda r=resolution: aggregator.run_tick(r),
            )
        )
    return scheduler
