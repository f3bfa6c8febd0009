"""Estadísticas de BD y del receptor."""

from fastapi import APIRouter, Depends
from sqlalchemy.engine import Connection

from ..core.receiver import IngestReceiver
from ..queries import get_stats
from .deps import get_active_receiver, get_connection

router = APIRouter(prefix="/api", tags=["stats"])


@router.get("/stats")
def stats(
    conn: Connection = Depends(get_connection),
    receiver: IngestReceiver = Depends(get_active_receiver),
):
    return {
        "database": get_stats(conn).model_dump(),
        "receiver": receiver.stats,
    }
