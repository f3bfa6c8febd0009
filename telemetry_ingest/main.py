from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.config import get_settings

from . import __version__
from .core.receiver import start_receiver, stop_receiver
from .endpoints import (
    commands_router,
    devices_router,
    health_router,
    history_router,
    stats_router,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    if not start_receiver(settings):
        logger.error("[APP] Receiver failed to start, queries will return 503")
    try:
        yield
    finally:
        stop_receiver()


app = FastAPI(title="HMI Telemetry Ingest", version=__version__, lifespan=lifespan)

app.include_router(health_router)
app.include_router(devices_router)
app.include_router(history_router)
app.include_router(commands_router)
app.include_router(stats_router)
