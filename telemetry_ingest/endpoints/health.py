"""Health and readiness endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..core.receiver import IngestReceiver, get_receiver
from .deps import get_active_receiver

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness: responde ok mientras el proceso esté vivo."""
    receiver = get_receiver()
    return {
        "status": "ok",
        "mqtt": "connected" if receiver is not None and receiver.is_connected else "disconnected",
    }


@router.get("/ready")
def ready(receiver: IngestReceiver = Depends(get_active_receiver)):
    """Readiness: verifica la conexión a BD."""
    try:
        with receiver.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready"}


@router.get("/health/receiver")
def receiver_health(receiver: IngestReceiver = Depends(get_active_receiver)):
    return receiver.health_check()


@router.get("/metrics")
def metrics():
    """Métricas Prometheus (formato texto)."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
