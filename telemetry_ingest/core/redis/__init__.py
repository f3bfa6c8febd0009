"""Redis layer - Conexión y publicación a streams."""

from .connection import RedisConnection
from .publisher import RedisStreamObserver

__all__ = ["RedisConnection", "RedisStreamObserver"]
