"""Observador de fan-out que publica cada lote a un Redis Stream."""

from __future__ import annotations

import logging

import orjson

from ..domain.batch import SampleBatch
from ..errors import StorageError
from .connection import RedisConnection

logger = logging.getLogger(__name__)

DEFAULT_STREAM = "telemetry:batches"
DEFAULT_MAX_LEN = 10000


class RedisStreamObserver:
    """Publica lotes normalizados a un Redis Stream (transporte en tiempo real).

    Se registra en el FanoutNotifier como cualquier otro observador; un fallo
    de Redis se propaga como excepción y el notifier lo aísla.
    """

    def __init__(
        self,
        connection: RedisConnection,
        stream_name: str = DEFAULT_STREAM,
        max_len: int = DEFAULT_MAX_LEN,
    ):
        self._conn = connection
        self._stream = stream_name
        self._max_len = max_len
        self.published = 0

    def __call__(self, batch: SampleBatch) -> None:
        if not self._conn.is_connected or self._conn.client is None:
            raise StorageError("Redis is not connected")

        self._conn.client.xadd(
            self._stream,
            {
                "device_ref": batch.device_ref,
                "timestamp": str(batch.timestamp_ms),
                "payload": orjson.dumps(batch.to_dict()),
            },
            maxlen=self._max_len,
            approximate=True,
        )
        self.published += 1
        logger.debug(
            "[REDIS] Published batch device=%s samples=%d",
            batch.device_ref,
            len(batch.samples),
        )

    @property
    def stream_name(self) -> str:
        return self._stream
