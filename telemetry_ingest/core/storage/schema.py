"""Esquema relacional del servicio.

Todas las marcas de tiempo se guardan como milisegundos Unix (BIGINT), igual
que llegan en el campo ``Unix`` de los HMI.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    BigInteger,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    SmallInteger,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine

from ..domain.resolution import Resolution

logger = logging.getLogger(__name__)

metadata = MetaData()

devices = Table(
    "devices",
    metadata,
    Column("device_id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("type", String(50), nullable=False, server_default="HMI"),
    Column("status", String(20), nullable=False, server_default="offline"),
    Column("last_seen", BigInteger),
    Column("location", String(255)),
    Column("description", Text),
    Column("created_at", BigInteger),
)

sensors = Table(
    "sensors",
    metadata,
    Column("sensor_id", Integer, primary_key=True, autoincrement=True),
    Column("device_id", Integer, ForeignKey("devices.device_id", ondelete="CASCADE"), nullable=False),
    Column("tag_name", String(255), nullable=False),
    Column("data_type", String(20), nullable=False, server_default="DOUBLE"),
    Column("created_at", BigInteger),
    UniqueConstraint("device_id", "tag_name", name="uq_sensors_device_tag"),
)

raw_history = Table(
    "raw_history",
    metadata,
    Column("sensor_id", Integer, ForeignKey("sensors.sensor_id", ondelete="CASCADE"), nullable=False),
    Column("timestamp", BigInteger, nullable=False),
    Column("value", Float),
    Column("quality", SmallInteger, nullable=False, server_default="1"),
    PrimaryKeyConstraint("sensor_id", "timestamp", name="pk_raw_history"),
)


def _rollup_table(resolution: Resolution) -> Table:
    return Table(
        resolution.table,
        metadata,
        Column("sensor_id", Integer, ForeignKey("sensors.sensor_id", ondelete="CASCADE"), nullable=False),
        Column("bucket_start", BigInteger, nullable=False),
        Column("avg_value", Float),
        Column("min_value", Float),
        Column("max_value", Float),
        Column("sample_count", Integer, nullable=False),
        PrimaryKeyConstraint("sensor_id", "bucket_start", name=f"pk_{resolution.table}"),
    )


rollup_tables = {resolution: _rollup_table(resolution) for resolution in Resolution}

command_history = Table(
    "command_history",
    metadata,
    Column("command_id", Integer, primary_key=True, autoincrement=True),
    Column("device_id", Integer, ForeignKey("devices.device_id", ondelete="CASCADE"), nullable=False),
    Column("command_json", Text, nullable=False),
    Column("status", String(20), nullable=False, server_default="sent"),
    Column("timestamp", BigInteger, nullable=False),
)


def ensure_schema(engine: Engine) -> None:
    """Crea las tablas que falten. Seguro de llamar varias veces."""
    logger.info("[DB] Verificando esquema (%d tablas)", len(metadata.tables))
    metadata.create_all(engine, checkfirst=True)
