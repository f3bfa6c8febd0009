"""Fixtures compartidas: BD SQLite en memoria con el esquema completo."""

from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from common.config import Settings
from telemetry_ingest.core.identity.registry import IdentityRegistry
from telemetry_ingest.core.storage.schema import ensure_schema

# Minuto exacto: 1_700_000_040_000 % 60_000 == 0
T0 = 1_700_000_040_000


class FakeClock:
    """Reloj manual en ms."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_settings(**overrides) -> Settings:
    base = dict(
        database_url="sqlite://",
        db_host="localhost",
        db_port=5432,
        db_user="postgres",
        db_password="postgres",
        db_name="test",
        mqtt_host="localhost",
        mqtt_port=1883,
        mqtt_username=None,
        mqtt_password=None,
        mqtt_client_id="test",
        mqtt_device_filter="+",
        mqtt_qos=1,
        redis_url=None,
        fanout_stream=None,
        dedup_backend="memory",
        num_workers=1,
        queue_size=100,
        aggregation_jobs_enabled=False,
        device_offline_seconds=60,
        log_level="DEBUG",
    )
    base.update(overrides)
    return Settings(**base)


@pytest.fixture
def engine() -> Iterator[Engine]:
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    ensure_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(engine, clock) -> IdentityRegistry:
    return IdentityRegistry(engine, clock=clock)
