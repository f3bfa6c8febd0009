"""Endpoints de histórico crudo, paginado y rollups."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Connection

from ..core.domain.resolution import Resolution
from ..queries import get_historical_data, get_historical_data_paginated, get_rollup
from ..schemas import HistoryFilters, HistoryPage, HistoryRow, RollupRow
from .deps import get_connection

router = APIRouter(prefix="/api/devices", tags=["history"])

DEFAULT_HISTORY_LIMIT = 100


@router.get("/{device_ref}/history", response_model=List[HistoryRow])
def history(
    device_ref: str,
    tag: Optional[str] = None,
    start: Optional[int] = Query(default=None, description="Unix ms, inclusivo"),
    end: Optional[int] = Query(default=None, description="Unix ms, inclusivo"),
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT, ge=1, le=10000),
    conn: Connection = Depends(get_connection),
):
    filters = HistoryFilters(device_ref=device_ref, tag=tag, start=start, end=end, limit=limit)
    return get_historical_data(conn, filters)


@router.get("/{device_ref}/history/paginated", response_model=HistoryPage)
def history_paginated(
    device_ref: str,
    tag: Optional[str] = None,
    start: Optional[int] = None,
    end: Optional[int] = None,
    page: int = 0,
    page_size: int = Query(default=50, alias="pageSize"),
    conn: Connection = Depends(get_connection),
):
    filters = HistoryFilters(
        device_ref=device_ref, tag=tag, start=start, end=end, page=page, page_size=page_size
    )
    return get_historical_data_paginated(conn, filters)


@router.get("/{device_ref}/history/{resolution}", response_model=List[RollupRow])
def history_rollup(
    device_ref: str,
    resolution: str,
    limit: Optional[int] = Query(default=None, ge=1, le=10000),
    conn: Connection = Depends(get_connection),
):
    try:
        res = Resolution.from_label(resolution)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"unknown resolution {resolution!r}")
    return get_rollup(conn, res, device_ref, limit)
