"""Rollup job configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from telemetry_ingest.core.domain.resolution import Resolution


@dataclass(frozen=True)
class RollupJobConfig:
    """Configuración del job de rollups."""
    resolutions: Tuple[Resolution, ...]
    once: bool
    ensure_schema: bool
