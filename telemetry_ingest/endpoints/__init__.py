"""Módulo de endpoints HTTP.

Contiene los endpoints de consulta y comandos organizados por función.
"""

from .commands import router as commands_router
from .devices import router as devices_router
from .health import router as health_router
from .history import router as history_router
from .stats import router as stats_router

__all__ = [
    "commands_router",
    "devices_router",
    "health_router",
    "history_router",
    "stats_router",
]
