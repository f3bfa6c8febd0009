"""Conexión a Redis (cache de últimos valores y stream de fan-out)."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit

import redis

logger = logging.getLogger(__name__)

DEFAULT_URL = "redis://localhost:6379/0"
DEFAULT_TIMEOUT = 5.0


def safe_url(url: str) -> str:
    """URL sin credenciales, apta para logs."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    port = f":{parts.port}" if parts.port else ""
    return f"{parts.scheme}://{host}{port}{parts.path}"


class RedisConnection:
    """Conexión opcional a Redis.

    El servicio funciona sin Redis: ``connect()`` devuelve False y los
    consumidores (cache de últimos valores, stream) se desactivan.

    Args:
        url: URL ``redis://``; por defecto la base 0 local
        timeout: Timeout de conexión y de socket en segundos
    """

    def __init__(self, url: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        self._url = url or DEFAULT_URL
        self._timeout = timeout
        self._client: Optional[redis.Redis] = None
        self._connected = False

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> bool:
        self._client = redis.Redis.from_url(
            self._url,
            decode_responses=False,
            socket_timeout=self._timeout,
            socket_connect_timeout=self._timeout,
        )
        if self.ping():
            logger.info("[REDIS] Connected: %s", safe_url(self._url))
        return self._connected

    def ping(self) -> bool:
        """Comprueba la conexión en vivo y actualiza ``is_connected``."""
        if self._client is None:
            return False
        try:
            self._client.ping()
        except redis.RedisError as e:
            if self._connected:
                logger.warning("[REDIS] Lost connection to %s: %s", safe_url(self._url), e)
            else:
                logger.warning("[REDIS] Connection to %s failed: %s", safe_url(self._url), e)
            self._connected = False
            return False
        self._connected = True
        return True

    def disconnect(self) -> None:
        client, self._client = self._client, None
        self._connected = False
        if client is None:
            return
        try:
            client.close()
        except redis.RedisError as e:
            logger.debug("[REDIS] Close failed: %s", e)
