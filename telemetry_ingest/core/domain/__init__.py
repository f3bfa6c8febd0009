"""Domain layer - Modelos y contratos."""

from .batch import BatchResult, Sample, SampleBatch
from .resolution import Resolution

__all__ = ["BatchResult", "Sample", "SampleBatch", "Resolution"]
