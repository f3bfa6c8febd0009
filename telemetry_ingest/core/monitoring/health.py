"""Estado de salud del receptor por componente."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..redis.connection import RedisConnection
from .stats import Stats

logger = logging.getLogger(__name__)

# Sin estos dos no hay ingesta; Redis y los rollups solo degradan.
REQUIRED_COMPONENTS = ("database", "mqtt")


@dataclass
class HealthStatus:
    components: Dict[str, bool]
    messages_processed: int = 0
    messages_failed: int = 0
    rollup_tasks: Dict[str, bool] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return all(self.components.get(name, False) for name in REQUIRED_COMPONENTS)

    @property
    def degraded(self) -> bool:
        """Sano, pero con algún componente opcional caído."""
        optional_down = not all(self.components.values()) or not all(self.rollup_tasks.values())
        return self.healthy and optional_down

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "degraded": self.degraded,
            "components": dict(self.components),
            "messages": {
                "processed": self.messages_processed,
                "failed": self.messages_failed,
            },
            "rollup_tasks": dict(self.rollup_tasks),
        }


class HealthChecker:
    """Comprueba en vivo BD y Redis; MQTT y rollups los aporta el receptor.

    Redis solo aparece en ``components`` si está configurado.
    """

    def __init__(self, engine: Engine, redis_conn: Optional[RedisConnection] = None):
        self._engine = engine
        self._redis = redis_conn

    def ping_database(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning("[HEALTH] Database check failed: %s", e)
            return False
        return True

    def get_status(
        self,
        *,
        mqtt_connected: bool,
        stats: Stats,
        rollup_tasks: Optional[Dict[str, bool]] = None,
    ) -> HealthStatus:
        components = {"database": self.ping_database(), "mqtt": mqtt_connected}
        if self._redis is not None:
            components["redis"] = self._redis.ping()

        return HealthStatus(
            components=components,
            messages_processed=stats.processed,
            messages_failed=stats.failed,
            rollup_tasks=rollup_tasks or {},
        )
