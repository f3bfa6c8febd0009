from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote_plus

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from .config import Settings, get_settings


logger = logging.getLogger(__name__)


def build_sqlalchemy_url(settings: Settings) -> str:
    if settings.database_url:
        return settings.database_url

    # quote_plus cubre contraseñas con caracteres especiales.
    return (
        f"postgresql+psycopg2://{quote_plus(settings.db_user)}:{quote_plus(settings.db_password)}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def get_engine(settings: Optional[Settings] = None) -> Engine:
    settings = settings or get_settings()
    url = build_sqlalchemy_url(settings)

    # Log básico de parámetros de conexión (sin contraseña)
    if settings.database_url:
        logger.info("[DB] Crear engine via DATABASE_URL")
    else:
        logger.info(
            "[DB] Crear engine PostgreSQL host=%s port=%s db=%s user=%s",
            settings.db_host,
            settings.db_port,
            settings.db_name,
            settings.db_user,
        )

    engine = create_engine(url, pool_pre_ping=True, pool_recycle=300, future=True)

    # Test de conexión: ayuda a ver en logs si el servicio realmente llega a la BD
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Test de conexión OK")
    except Exception:
        logger.exception("[DB] Test de conexión FALLÓ")

    return engine
