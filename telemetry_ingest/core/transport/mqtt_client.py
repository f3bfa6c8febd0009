"""Cliente MQTT para recepción de telemetría HMI y envío de comandos."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple, Union

import paho.mqtt.client as mqtt

from ..monitoring.metrics import MQTT_CONNECTED

logger = logging.getLogger(__name__)

# Topics publicados por el HMI bajo el prefijo ``<ID+PWD>/``.
INBOUND_TOPIC_TYPES: Tuple[str, ...] = ("pub_data", "pub_configlist", "write_reply")


def build_subscriptions(device_filter: str = "+") -> Tuple[str, ...]:
    """Topics a suscribir; ``+`` escucha todos los dispositivos."""
    return tuple(f"{device_filter}/{topic_type}" for topic_type in INBOUND_TOPIC_TYPES)


class MQTTClient:
    """Cliente MQTT ligero.

    Responsabilidades:
    - Conexión/desconexión a broker MQTT
    - Suscripción a los topics del HMI (re-suscribe al reconectar)
    - Delegación de mensajes a handler
    - Publicación de comandos
    """

    def __init__(
        self,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "hmi-ingest",
        device_filter: str = "+",
        qos: int = 2,
        subscribe: bool = True,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.client_id = f"{client_id}-{int(time.time())}"
        # Un cliente solo de publicación (simulador) no se suscribe a nada.
        self.subscriptions = build_subscriptions(device_filter) if subscribe else ()
        self.qos = qos

        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._message_handler: Optional[Callable[[str, bytes], None]] = None

    def set_message_handler(self, handler: Callable[[str, bytes], None]) -> None:
        """Configura el handler de mensajes (se ejecuta en el hilo de paho)."""
        self._message_handler = handler

    def connect(self, timeout: float = 5.0) -> bool:
        """Conecta al broker MQTT y espera el CONNACK."""
        try:
            self._client = mqtt.Client(
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            )

            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)

            logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()

            deadline = time.monotonic() + timeout
            while time.monotonic() < deadline:
                if self._connected:
                    return True
                time.sleep(0.1)

            logger.error("[MQTT] Connection timeout")
            return False

        except (OSError, ValueError) as e:
            logger.error("[MQTT] Connection failed: %s", e)
            return False

    def disconnect(self) -> None:
        if self._client is not None:
            self._client.loop_stop()
            self._client.disconnect()
        self._connected = False
        MQTT_CONNECTED.set(0)

    def publish(self, topic: str, payload: Union[bytes, str], qos: int = 1) -> bool:
        """Publica un mensaje. False si no hay conexión o paho lo rechaza."""
        if self._client is None or not self._connected:
            logger.warning("[MQTT] Publish skipped, not connected (topic=%s)", topic)
            return False

        info = self._client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error("[MQTT] Publish failed topic=%s rc=%s", topic, info.rc)
            return False
        logger.debug("[MQTT] Published topic=%s bytes=%d", topic, len(payload))
        return True

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            self._connected = True
            MQTT_CONNECTED.set(1)
            logger.info("[MQTT] Connected to broker")
            for topic in self.subscriptions:
                client.subscribe(topic, qos=self.qos)
                logger.info("[MQTT] Subscribed to %s (qos=%d)", topic, self.qos)
        else:
            self._connected = False
            logger.error("[MQTT] Connection refused: %s", reason_code)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        MQTT_CONNECTED.set(0)
        logger.warning("[MQTT] Disconnected (%s)", reason_code)

    def _on_message(self, client, userdata, msg):
        if self._message_handler is not None:
            self._message_handler(msg.topic, msg.payload)

    @property
    def is_connected(self) -> bool:
        return self._connected
