"""Transport layer - Cliente MQTT, handler y comandos."""

from .commands import CommandPublisher, CommandResult, build_write_payload, write_topic
from .message_handler import InboundMessage, MessageHandler
from .mqtt_client import MQTTClient, build_subscriptions

__all__ = [
    "CommandPublisher",
    "CommandResult",
    "InboundMessage",
    "MQTTClient",
    "MessageHandler",
    "build_subscriptions",
    "build_write_payload",
    "write_topic",
]
