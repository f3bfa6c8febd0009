"""Dedup layer - Filtro de cambios sobre el último valor observado."""

from .value_store import InMemoryLastValueStore, LastValueStore, RedisLastValueStore
from .writer import ChangeFilteredWriter, WriteResult, coerce_numeric

__all__ = [
    "ChangeFilteredWriter",
    "InMemoryLastValueStore",
    "LastValueStore",
    "RedisLastValueStore",
    "WriteResult",
    "coerce_numeric",
]
