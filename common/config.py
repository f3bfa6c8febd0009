from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _default_env_file() -> str:
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]
    db_host: str
    db_port: int
    db_user: str
    db_password: str
    db_name: str

    mqtt_host: str
    mqtt_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_client_id: str
    mqtt_device_filter: str
    mqtt_qos: int

    redis_url: Optional[str]
    fanout_stream: Optional[str]
    dedup_backend: str

    num_workers: int
    queue_size: int
    aggregation_jobs_enabled: bool
    device_offline_seconds: int
    log_level: str


def get_settings() -> Settings:
    # Carga el .env (si existe) sin pisar variables reales del entorno.
    env_file = os.getenv("IOT_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        database_url=os.getenv("DATABASE_URL") or None,
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "xinje_iot"),
        mqtt_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        mqtt_port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_client_id=os.getenv("MQTT_CLIENT_ID", "hmi-ingest"),
        # "+" escucha todos los dispositivos; un ID+PWD concreto limita a uno.
        mqtt_device_filter=os.getenv("MQTT_DEVICE_FILTER", "+"),
        mqtt_qos=int(os.getenv("MQTT_QOS", "2")),
        redis_url=os.getenv("REDIS_URL") or None,
        fanout_stream=os.getenv("FANOUT_REDIS_STREAM") or None,
        dedup_backend=os.getenv("DEDUP_BACKEND", "memory").strip().lower(),
        num_workers=int(os.getenv("INGEST_NUM_WORKERS", "4")),
        queue_size=int(os.getenv("INGEST_QUEUE_SIZE", "1000")),
        aggregation_jobs_enabled=_env_bool("ENABLE_APP_AGGREGATION_JOBS", "true"),
        device_offline_seconds=int(os.getenv("DEVICE_OFFLINE_SECONDS", "60")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
