from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

MAX_PAGE_SIZE = 500
DEFAULT_PAGE_SIZE = 50


class LatestValue(BaseModel):
    sensor_id: int
    tag: str
    value: Optional[float] = None
    quality: int = 1
    timestamp: int


class HistoryRow(BaseModel):
    sensor_id: int
    tag: str
    timestamp: int
    value: Optional[float] = None
    quality: int = 1


class HistoryFilters(BaseModel):
    """Filtros de consulta de raw_history (timestamps en ms Unix, ambos inclusivos)."""

    device_ref: Optional[str] = None
    tag: Optional[str] = None
    start: Optional[int] = None
    end: Optional[int] = None
    limit: Optional[int] = Field(default=None, ge=1)
    page: int = 0
    page_size: int = DEFAULT_PAGE_SIZE

    @field_validator("page", mode="before")
    @classmethod
    def clamp_page(cls, v):
        try:
            return max(0, int(v))
        except (TypeError, ValueError):
            return 0

    @field_validator("page_size", mode="before")
    @classmethod
    def clamp_page_size(cls, v):
        # Como el API histórico: valores fuera de rango se ajustan, no se rechazan.
        try:
            v = int(v)
        except (TypeError, ValueError):
            return DEFAULT_PAGE_SIZE
        if v < 1:
            return DEFAULT_PAGE_SIZE if v == 0 else 1
        return min(v, MAX_PAGE_SIZE)


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class HistoryPage(BaseModel):
    data: List[HistoryRow] = Field(default_factory=list)
    pagination: Pagination


class RollupRow(BaseModel):
    sensor_id: int
    tag: str
    bucket_start: int
    avg: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    count: int


class DeviceOut(BaseModel):
    device_id: int
    name: str
    type: str
    status: str
    last_seen: Optional[int] = None
    location: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[int] = None


class DeviceList(BaseModel):
    total: int
    devices: List[DeviceOut] = Field(default_factory=list)


class SensorOut(BaseModel):
    sensor_id: int
    device_id: int
    tag_name: str
    data_type: str


class StatsOut(BaseModel):
    total_records: int
    total_devices: int
    total_sensors: int
    rollup_rows: Dict[str, int] = Field(default_factory=dict)
    database_size_mb: Optional[float] = None


class CommandOut(BaseModel):
    success: bool
    device_ref: str
    topic: str
    recorded: bool
    command: Dict[str, Any]
