"""Monitoring layer - Stats, health y métricas Prometheus."""

from .health import HealthChecker, HealthStatus
from .stats import Stats

__all__ = ["HealthChecker", "HealthStatus", "Stats"]
