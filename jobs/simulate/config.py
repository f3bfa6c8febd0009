"""Simulator job configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DEFAULT_DEVICE_REF = "441095104B78F267112345678"
DEFAULT_DEVICE_NAME = "Nombre_Dispositivo"


@dataclass(frozen=True)
class SimulatorConfig:
    """Configuración del simulador HMI."""
    device_ref: str = DEFAULT_DEVICE_REF
    device_name: str = DEFAULT_DEVICE_NAME
    interval: float = 10.0
    count: int = 0  # 0 = sin límite
    wrap_variant: bool = True
    qos: int = 2
    seed: Optional[int] = None

    @property
    def topic(self) -> str:
        return f"{self.device_ref}/pub_data"
