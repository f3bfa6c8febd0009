"""Receptor de telemetría HMI - Punto de entrada principal.

Cablea la arquitectura modular:
- transport/     → Cliente MQTT, handler y comandos
- normalization/ → Sobres HMI → lotes
- identity/      → Dispositivos y sensores
- dedup/         → Escritura filtrada por cambios
- fanout/        → Observadores en tiempo real (Redis Stream)
- pipeline/      → Procesamiento y workers
- rollups/       → Agregación periódica
- monitoring/    → Stats, health y métricas
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from common.config import Settings, get_settings
from common.db import get_engine

from .dedup.value_store import InMemoryLastValueStore, LastValueStore, RedisLastValueStore
from .dedup.writer import ChangeFilteredWriter
from .fanout.notifier import FanoutNotifier
from .identity.registry import IdentityRegistry
from .monitoring.health import HealthChecker
from .pipeline.dispatcher import MessageDispatcher, create_dispatcher
from .pipeline.processor import IngestionPipeline
from .redis.connection import RedisConnection
from .redis.publisher import RedisStreamObserver
from .rollups.aggregator import RollupAggregator
from .rollups.scheduler import JobScheduler, build_rollup_scheduler
from .storage.schema import ensure_schema
from .transport.commands import CommandPublisher
from .transport.message_handler import InboundMessage, MessageHandler
from .transport.mqtt_client import MQTTClient

logger = logging.getLogger(__name__)


class IngestReceiver:
    """Receptor MQTT con arquitectura modular.

    Componentes:
    - MQTTClient: Conexión, suscripción y publicación
    - MessageDispatcher: Colas por dispositivo + workers
    - MessageHandler: Enrutado y normalización
    - IngestionPipeline: Registro → escritor → fan-out
    - JobScheduler: Rollups 1min/5min/10min/1hour (opcional)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine: Optional[Engine] = None,
        mqtt_client: Optional[MQTTClient] = None,
    ):
        self._settings = settings or get_settings()
        self._engine = engine
        self._mqtt = mqtt_client
        self._redis: Optional[RedisConnection] = None
        self._registry: Optional[IdentityRegistry] = None
        self._writer: Optional[ChangeFilteredWriter] = None
        self._notifier = FanoutNotifier()
        self._pipeline: Optional[IngestionPipeline] = None
        self._handler: Optional[MessageHandler] = None
        self._dispatcher: Optional[MessageDispatcher] = None
        self._aggregator: Optional[RollupAggregator] = None
        self._scheduler: Optional[JobScheduler] = None
        self._commands: Optional[CommandPublisher] = None
        self._health: Optional[HealthChecker] = None
        self._running = False

    def start(self) -> bool:
        """Inicia el receptor. Sin BD no arranca; sin MQTT sí (solo consultas)."""
        s = self._settings
        try:
            # 1. BD + esquema
            if self._engine is None:
                self._engine = get_engine(s)
            ensure_schema(self._engine)
        except SQLAlchemyError as e:
            logger.error("[RECEIVER] Database unavailable: %s", e)
            return False

        # 2. Redis (opcional)
        if s.redis_url:
            self._redis = RedisConnection(s.redis_url)
            self._redis.connect()

        # 3. Pipeline
        self._registry = IdentityRegistry(self._engine)
        self._writer = ChangeFilteredWriter(
            self._engine,
            resolve_sensor=self._registry.resolve_sensor,
            store=self._build_value_store(),
        )
        if s.fanout_stream and self._redis is not None and self._redis.is_connected:
            self._notifier.subscribe(RedisStreamObserver(self._redis, s.fanout_stream))
            logger.info("[RECEIVER] Fan-out to Redis stream %s", s.fanout_stream)
        self._pipeline = IngestionPipeline(self._registry, self._writer, self._notifier)
        self._handler = MessageHandler(self._pipeline)

        # 4. Workers
        self._dispatcher = create_dispatcher(
            self._handler.handle_message,
            num_workers=s.num_workers,
            max_queue_size=s.queue_size,
        )

        # 5. Rollups
        if s.aggregation_jobs_enabled:
            self._aggregator = RollupAggregator(self._engine)
            self._scheduler = build_rollup_scheduler(self._aggregator)
            self._scheduler.start_all()
            logger.info("[RECEIVER] Aggregation jobs enabled")
        else:
            logger.info("[RECEIVER] Aggregation jobs disabled by configuration")

        # 6. MQTT (no crítico)
        if self._mqtt is None:
            self._mqtt = MQTTClient(
                broker_host=s.mqtt_host,
                broker_port=s.mqtt_port,
                username=s.mqtt_username,
                password=s.mqtt_password,
                client_id=s.mqtt_client_id,
                device_filter=s.mqtt_device_filter,
                qos=s.mqtt_qos,
            )
        self._mqtt.set_message_handler(self.on_mqtt_message)
        if not self._mqtt.connect():
            logger.warning("[RECEIVER] MQTT unavailable, running without ingestion")

        self._commands = CommandPublisher(self._mqtt, self._engine, self._registry)
        self._health = HealthChecker(self._engine, self._redis)

        self._running = True
        logger.info("[RECEIVER] Started successfully")
        return True

    def stop(self) -> None:
        """Detiene el receptor: primero la entrada, luego workers y timers."""
        self._running = False

        if self._mqtt is not None:
            self._mqtt.disconnect()
        if self._dispatcher is not None:
            self._dispatcher.stop(drain=True)
        if self._scheduler is not None:
            self._scheduler.stop_all()
        if self._redis is not None:
            self._redis.disconnect()

        if self._handler is not None:
            logger.info("[RECEIVER] Stopped. %s", self._handler.stats)

    def on_mqtt_message(self, topic: str, payload: bytes) -> None:
        """Callback del hilo de paho: solo encola."""
        message = InboundMessage(topic=topic, payload=bytes(payload))
        if self._dispatcher is not None:
            self._dispatcher.enqueue(message.device_ref, message)

    def _build_value_store(self) -> LastValueStore:
        backend = self._settings.dedup_backend
        if backend == "redis":
            if self._redis is not None and self._redis.is_connected:
                logger.info("[RECEIVER] Last-value cache: redis")
                return RedisLastValueStore(self._redis.client)
            logger.warning("[RECEIVER] DEDUP_BACKEND=redis but Redis is not connected, using memory")
        elif backend != "memory":
            logger.warning("[RECEIVER] Unknown DEDUP_BACKEND=%s, using memory", backend)
        return InMemoryLastValueStore()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def engine(self) -> Optional[Engine]:
        return self._engine

    @property
    def notifier(self) -> FanoutNotifier:
        return self._notifier

    @property
    def commands(self) -> Optional[CommandPublisher]:
        return self._commands

    @property
    def scheduler(self) -> Optional[JobScheduler]:
        return self._scheduler

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._mqtt.is_connected if self._mqtt is not None else False

    @property
    def stats(self) -> dict:
        """Estadísticas del receptor."""
        return {
            "running": self._running,
            "connected": self.is_connected,
            "redis_connected": self._redis.is_connected if self._redis else False,
            "handler": self._handler.stats.to_dict() if self._handler else {},
            "writer": self._writer.stats if self._writer else {},
            "dispatcher": self._dispatcher.metrics if self._dispatcher else {},
            "rollups": self._aggregator.get_stats() if self._aggregator else {},
            "observers": self._notifier.observer_count,
        }

    def health_check(self) -> dict:
        if self._health is None or self._handler is None:
            return {"healthy": False, "reason": "Not initialized"}

        tasks = {}
        if self._scheduler is not None:
            tasks = {name: st["running"] for name, st in self._scheduler.get_stats().items()}
        status = self._health.get_status(
            mqtt_connected=self.is_connected,
            stats=self._handler.stats,
            rollup_tasks=tasks,
        )
        return status.to_dict()


# Singleton
_receiver: Optional[IngestReceiver] = None


def get_receiver() -> Optional[IngestReceiver]:
    """Obtiene el receptor singleton."""
    return _receiver


def start_receiver(settings: Optional[Settings] = None) -> bool:
    """Inicia el receptor singleton.

    Un receptor que no arranca no se registra: la siguiente llamada reintenta.
    """
    global _receiver

    if _receiver is not None:
        return _receiver.is_running

    receiver = IngestReceiver(settings)
    if not receiver.start():
        return False
    _receiver = receiver
    return True


def stop_receiver() -> None:
    """Detiene el receptor singleton."""
    global _receiver

    if _receiver is not None:
        _receiver.stop()
        _receiver = None
