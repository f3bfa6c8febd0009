"""Servicio de ingesta de telemetría HMI (MQTT → PostgreSQL + rollups)."""

__version__ = "0.4.0"
