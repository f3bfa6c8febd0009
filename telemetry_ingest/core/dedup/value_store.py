"""Almacenes del último valor observado por (device_id, tag)."""

from __future__ import annotations

import threading
from typing import Dict, Hashable, Optional, Protocol, Tuple

import redis

from ..errors import StorageError

CacheKey = Tuple[int, str]


class LastValueStore(Protocol):
    """Contrato mínimo del cache de últimos valores."""

    def get(self, key: CacheKey) -> Optional[float]:
        ...

    def set(self, key: CacheKey, value: float) -> None:
        ...

    def delete(self, key: CacheKey) -> None:
        ...


class InMemoryLastValueStore:
    """Cache local al proceso (se pierde al reiniciar)."""

    def __init__(self) -> None:
        self._values: Dict[Hashable, float] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[float]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: CacheKey, value: float) -> None:
        with self._lock:
            self._values[key] = value

    def delete(self, key: CacheKey) -> None:
        with self._lock:
            self._values.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)


class RedisLastValueStore:
    """Cache compartido en Redis (sobrevive reinicios y varias réplicas).

    Cada entrada es una clave ``<prefix><device_id>:<tag>`` con el valor como
    texto decimal.
    """

    KEY_PREFIX = "lastval:"

    def __init__(self, client: redis.Redis, key_prefix: str = KEY_PREFIX):
        self._redis = client
        self._prefix = key_prefix

    def _key(self, key: CacheKey) -> str:
        device_id, tag = key
        return f"{self._prefix}{device_id}:{tag}"

    def get(self, key: CacheKey) -> Optional[float]:
        try:
            raw = self._redis.get(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Redis get failed: {e}") from e
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return float(raw)
        except ValueError:
            return None

    def set(self, key: CacheKey, value: float) -> None:
        try:
            self._redis.set(self._key(key), repr(float(value)))
        except redis.RedisError as e:
            raise StorageError(f"Redis set failed: {e}") from e

    def delete(self, key: CacheKey) -> None:
        try:
            self._redis.delete(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Redis delete failed: {e}") from e
