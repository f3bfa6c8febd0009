"""Queries de histórico crudo y rollups.

Funciones puras de consulta a BD; un dispositivo desconocido devuelve vacío.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Connection

from ..core.domain.resolution import Resolution
from ..core.storage.devices import find_device_id
from ..schemas import HistoryFilters, HistoryPage, HistoryRow, LatestValue, Pagination, RollupRow


def get_latest_by_key(conn: Connection, device_ref: str) -> List[LatestValue]:
    """Último valor de cada tag del dispositivo, ordenado por tag."""
    device_id = find_device_id(conn, device_ref)
    if device_id is None:
        return []

    rows = conn.execute(
        text(
            """
            SELECT s.sensor_id, s.tag_name, r."timestamp" AS ts, r.value, r.quality
            FROM sensors s
            JOIN raw_history r ON r.sensor_id = s.sensor_id
            WHERE s.device_id = :device_id
              AND r."timestamp" = (
                  SELECT MAX(r2."timestamp") FROM raw_history r2 WHERE r2.sensor_id = s.sensor_id
              )
            ORDER BY s.tag_name ASC
            """
        ),
        {"device_id": device_id},
    ).fetchall()

    return [
        LatestValue(
            sensor_id=int(row.sensor_id),
            tag=str(row.tag_name),
            value=row.value,
            quality=int(row.quality),
            timestamp=int(row.ts),
        )
        for row in rows
    ]


def _history_where(
    conn: Connection,
    filters: HistoryFilters,
) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Cláusula WHERE + parámetros. None si el dispositivo no existe."""
    clauses = ["1=1"]
    params: Dict[str, Any] = {}

    if filters.device_ref:
        device_id = find_device_id(conn, filters.device_ref)
        if device_id is None:
            return None
        clauses.append("s.device_id = :device_id")
        params["device_id"] = device_id

    if filters.tag:
        clauses.append("s.tag_name = :tag")
        params["tag"] = filters.tag

    if filters.start is not None:
        clauses.append('r."timestamp" >= :start')
        params["start"] = filters.start

    if filters.end is not None:
        clauses.append('r."timestamp" <= :end')
        params["end"] = filters.end

    return " AND ".join(clauses), params


def _to_history_row(row) -> HistoryRow:
    return HistoryRow(
        sensor_id=int(row.sensor_id),
        tag=str(row.tag_name),
        timestamp=int(row.ts),
        value=row.value,
        quality=int(row.quality),
    )


_HISTORY_SELECT = """
    SELECT r.sensor_id, s.tag_name, r."timestamp" AS ts, r.value, r.quality
    FROM raw_history r
    JOIN sensors s ON r.sensor_id = s.sensor_id
    WHERE {where}
    ORDER BY r."timestamp" DESC, s.tag_name ASC
"""


def get_historical_data(conn: Connection, filters: HistoryFilters) -> List[HistoryRow]:
    """Muestras crudas, más recientes primero."""
    built = _history_where(conn, filters)
    if built is None:
        return []
    where, params = built

    sql = _HISTORY_SELECT.format(where=where)
    if filters.limit:
        sql += " LIMIT :limit"
        params["limit"] = filters.limit

    return [_to_history_row(row) for row in conn.execute(text(sql), params).fetchall()]


def get_historical_data_paginated(conn: Connection, filters: HistoryFilters) -> HistoryPage:
    """Variante paginada (page desde 0, page_size 1..500)."""
    page, page_size = filters.page, filters.page_size

    built = _history_where(conn, filters)
    if built is None:
        return HistoryPage(
            data=[],
            pagination=Pagination(
                page=page, page_size=page_size, total=0, total_pages=0,
                has_next=False, has_prev=page > 0,
            ),
        )
    where, params = built

    total = conn.execute(
        text(
            f"""
            SELECT COUNT(*)
            FROM raw_history r
            JOIN sensors s ON r.sensor_id = s.sensor_id
            WHERE {where}
            """
        ),
        params,
    ).scalar_one()
    total = int(total or 0)

    sql = _HISTORY_SELECT.format(where=where) + " LIMIT :limit OFFSET :offset"
    rows = conn.execute(
        text(sql),
        {**params, "limit": page_size, "offset": page * page_size},
    ).fetchall()

    return HistoryPage(
        data=[_to_history_row(row) for row in rows],
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=math.ceil(total / page_size),
            has_next=(page + 1) * page_size < total,
            has_prev=page > 0,
        ),
    )


def get_rollup(
    conn: Connection,
    resolution: Resolution,
    device_ref: str,
    limit: Optional[int] = None,
) -> List[RollupRow]:
    """Buckets de una resolución, más recientes primero."""
    device_id = find_device_id(conn, device_ref)
    if device_id is None:
        return []

    rows = conn.execute(
        text(
            f"""
            SELECT b.sensor_id, s.tag_name, b.bucket_start, b.avg_value,
                   b.min_value, b.max_value, b.sample_count
            FROM {resolution.table} b
            JOIN sensors s ON b.sensor_id = s.sensor_id
            WHERE s.device_id = :device_id
            ORDER BY b.bucket_start DESC, s.tag_name ASC
            LIMIT :limit
            """
        ),
        {"device_id": device_id, "limit": limit or resolution.default_limit},
    ).fetchall()

    return [
        RollupRow(
            sensor_id=int(row.sensor_id),
            tag=str(row.tag_name),
            bucket_start=int(row.bucket_start),
            avg=row.avg_value,
            min=row.min_value,
            max=row.max_value,
            count=int(row.sample_count),
        )
        for row in rows
    ]
