"""Envío de comandos de escritura al HMI (``<deviceRef>/write_data``)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import orjson
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..clock import now_ms
from ..errors import StorageError, TransportError
from ..identity.registry import IdentityRegistry
from ..normalization.envelopes import KNOWN_VERSIONS
from .mqtt_client import MQTTClient

logger = logging.getLogger(__name__)

COMMAND_QOS = 1
PROTOCOL_VERSION = next(iter(KNOWN_VERSIONS))

_INSERT_COMMAND = text(
    """
    INSERT INTO command_history (device_id, command_json, status, "timestamp")
    VALUES (:device_id, :command_json, 'sent', :ts)
    """
)


def write_topic(device_ref: str) -> str:
    return f"{device_ref}/write_data"


def build_write_payload(write_data: Dict[str, Any], unix_ms: Optional[int] = None) -> Dict[str, Any]:
    """Construye el sobre estándar de escritura."""
    return {
        "Unix": unix_ms if unix_ms is not None else now_ms(),
        "Version": PROTOCOL_VERSION,
        "Write_Data": write_data,
    }


@dataclass(frozen=True)
class CommandResult:
    device_ref: str
    topic: str
    recorded: bool

    def to_dict(self) -> dict:
        return {"device_ref": self.device_ref, "topic": self.topic, "recorded": self.recorded}


class CommandPublisher:
    """Publica comandos ya construidos y los registra en command_history.

    El registro es best-effort: un fallo de BD se loggea, el comando ya salió.
    """

    def __init__(
        self,
        mqtt_client: MQTTClient,
        engine: Engine,
        registry: IdentityRegistry,
        clock: Callable[[], int] = now_ms,
    ):
        self._mqtt = mqtt_client
        self._engine = engine
        self._registry = registry
        self._clock = clock

    def send_command(
        self,
        device_ref: str,
        payload: Union[Dict[str, Any], bytes, str],
    ) -> CommandResult:
        """Publica ``payload`` tal cual en ``<deviceRef>/write_data`` (QoS 1).

        Raises:
            TransportError: el broker no aceptó la publicación
        """
        if isinstance(payload, dict):
            body = orjson.dumps(payload)
        elif isinstance(payload, str):
            body = payload.encode("utf-8")
        else:
            body = bytes(payload)

        topic = write_topic(device_ref)
        if not self._mqtt.publish(topic, body, qos=COMMAND_QOS):
            raise TransportError(f"Could not publish command to {topic}")

        logger.info("[COMMAND] Sent to device=%s bytes=%d", device_ref, len(body))
        recorded = self._record(device_ref, body)
        return CommandResult(device_ref=device_ref, topic=topic, recorded=recorded)

    def _record(self, device_ref: str, body: bytes) -> bool:
        try:
            device_id = self._registry.find_device(device_ref)
            if device_id is None:
                device_id = self._registry.resolve_device(device_ref)
            with self._engine.begin() as conn:
                conn.execute(
                    _INSERT_COMMAND,
                    {
                        "device_id": device_id,
                        "command_json": body.decode("utf-8", errors="replace"),
                        "ts": self._clock(),
                    },
                )
            return True
        except (StorageError, SQLAlchemyError) as e:
            logger.error("[COMMAND] Could not record command for device=%s: %s", device_ref, e)
            return False
