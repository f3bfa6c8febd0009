"""Rollups layer - Agregación periódica por resolución."""

from .aggregator import RollupAggregator, rollup_window
from .scheduler import JobScheduler, PeriodicTask, build_rollup_scheduler, rollup_task_name

__all__ = [
    "JobScheduler",
    "PeriodicTask",
    "RollupAggregator",
    "build_rollup_scheduler",
    "rollup_task_name",
    "rollup_window",
]
