"""Pipeline layer - Procesamiento de lotes y despacho a workers."""

from .dispatcher import MessageDispatcher, create_dispatcher, partition_for
from .processor import IngestionPipeline

__all__ = ["IngestionPipeline", "MessageDispatcher", "create_dispatcher", "partition_for"]
