"""CLI entry point for the HMI simulator.

Publica en ``<device_ref>/pub_data`` el mismo sobre que envía un panel Xinje
(``Variant`` + ``Unix`` como texto), con variables que se mueven en random walk.
"""

from __future__ import annotations

import argparse
import logging
import random
import signal
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import orjson

from common.config import get_settings
from telemetry_ingest.core.clock import now_ms
from telemetry_ingest.core.transport.commands import PROTOCOL_VERSION
from telemetry_ingest.core.transport.mqtt_client import MQTTClient

from .config import SimulatorConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulatedVariable:
    name: str
    minimum: float
    maximum: float
    start: float
    max_step: float
    decimals: int = 0


DEFAULT_VARIABLES = (
    SimulatedVariable("cantidad_productos", 0, 500, 150, 20),
    SimulatedVariable("temperatura", 18.0, 35.0, 24.5, 1.0, decimals=1),
)


class HmiSimulator:
    """Estado de las variables simuladas.

    Cada ``step()`` mueve cada variable como mucho ``max_step`` y la mantiene
    dentro de [minimum, maximum].
    """

    def __init__(
        self,
        variables: Sequence[SimulatedVariable] = DEFAULT_VARIABLES,
        rng: Optional[random.Random] = None,
    ):
        self._variables = tuple(variables)
        self._rng = rng or random.Random()
        self._values: Dict[str, float] = {v.name: v.start for v in self._variables}

    @property
    def values(self) -> Dict[str, Any]:
        return {v.name: self._format(v, self._values[v.name]) for v in self._variables}

    def step(self) -> Dict[str, Any]:
        for var in self._variables:
            delta = self._rng.uniform(-var.max_step, var.max_step)
            moved = self._values[var.name] + delta
            self._values[var.name] = min(var.maximum, max(var.minimum, moved))
        return self.values

    @staticmethod
    def _format(var: SimulatedVariable, value: float) -> Any:
        if var.decimals == 0:
            return int(round(value))
        return round(value, var.decimals)


def build_pub_data_payload(
    device_name: str,
    values: Dict[str, Any],
    unix_ms: int,
    wrap_variant: bool = True,
) -> Dict[str, Any]:
    """Sobre ``pub_data`` tal como lo emite el HMI."""
    envelope = {
        "Unix": str(unix_ms),
        "Version": PROTOCOL_VERSION,
        "Pub_Data": {device_name: values},
    }
    return {"Variant": [envelope]} if wrap_variant else envelope


def run(
    client: MQTTClient,
    simulator: HmiSimulator,
    cfg: SimulatorConfig,
    stop: threading.Event,
    clock: Callable[[], int] = now_ms,
) -> int:
    """Publica hasta ``cfg.count`` mensajes (o hasta ``stop``).

    Returns:
        Número de mensajes aceptados por el cliente
    """
    published = 0
    sent = 0
    while not stop.is_set():
        values = simulator.step()
        payload = build_pub_data_payload(cfg.device_name, values, clock(), cfg.wrap_variant)
        if client.publish(cfg.topic, orjson.dumps(payload), qos=cfg.qos):
            published += 1
            logger.info("[SIMULATOR] Published %s", values)
        else:
            logger.warning("[SIMULATOR] Publish failed topic=%s", cfg.topic)
        sent += 1

        if cfg.count and sent >= cfg.count:
            break
        stop.wait(cfg.interval)
    return published


def parse_args(argv: Optional[List[str]] = None) -> SimulatorConfig:
    defaults = SimulatorConfig()
    p = argparse.ArgumentParser(description="Xinje HMI simulator (publishes pub_data)")
    p.add_argument("--device-ref", default=defaults.device_ref, help="topic prefix (ID+PWD)")
    p.add_argument("--device-name", default=defaults.device_name, help="key inside Pub_Data")
    p.add_argument("--interval", type=float, default=defaults.interval, help="seconds between messages")
    p.add_argument("--count", type=int, default=0, help="messages to send (0 = until Ctrl+C)")
    p.add_argument("--plain", action="store_true", help="send the plain envelope, without Variant")
    p.add_argument("--qos", type=int, choices=(0, 1, 2), default=defaults.qos)
    p.add_argument("--seed", type=int, default=None, help="random seed (reproducible runs)")
    args = p.parse_args(argv)

    if args.interval <= 0:
        p.error("--interval must be positive")
    if args.count < 0:
        p.error("--count must be >= 0")

    return SimulatorConfig(
        device_ref=args.device_ref,
        device_name=args.device_name,
        interval=args.interval,
        count=args.count,
        wrap_variant=not args.plain,
        qos=args.qos,
        seed=args.seed,
    )


def main(argv: Optional[List[str]] = None) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    cfg = parse_args(argv)
    client = MQTTClient(
        broker_host=settings.mqtt_host,
        broker_port=settings.mqtt_port,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
        client_id="hmi-simulator",
        subscribe=False,
    )
    if not client.connect():
        logger.error("[SIMULATOR] Could not connect to %s:%d", settings.mqtt_host, settings.mqtt_port)
        return 1

    stop = threading.Event()

    def _on_signal(signum, frame):
        logger.info("Signal %s received, stopping...", signum)
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    logger.info("[SIMULATOR] Publishing to %s every %.1fs", cfg.topic, cfg.interval)
    try:
        published = run(client, HmiSimulator(rng=random.Random(cfg.seed)), cfg, stop)
    finally:
        client.disconnect()
    logger.info("[SIMULATOR] Stopped after %d messages", published)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
