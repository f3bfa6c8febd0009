"""Tests de las queries de consulta (latest, histórico, rollups, dispositivos)."""

import pytest

from telemetry_ingest.core.dedup.writer import ChangeFilteredWriter
from telemetry_ingest.core.domain.resolution import Resolution
from telemetry_ingest.core.rollups import RollupAggregator
from telemetry_ingest.queries import (
    get_devices,
    get_historical_data,
    get_historical_data_paginated,
    get_latest_by_key,
    get_rollup,
    get_sensors,
    get_stats,
)
from telemetry_ingest.queries.devices import derive_status
from telemetry_ingest.schemas import HistoryFilters

from .conftest import T0


@pytest.fixture
def device_id(engine, registry):
    device_id = registry.resolve_device("dev1")
    writer = ChangeFilteredWriter(engine, resolve_sensor=registry.resolve_sensor)
    writer.maybe_write(device_id, "temp", 1.0, T0)
    writer.maybe_write(device_id, "temp", 2.0, T0 + 1000)
    writer.maybe_write(device_id, "pressure", 5.0, T0)
    return device_id


@pytest.fixture
def conn(engine, device_id):
    with engine.connect() as c:
        yield c


# =============================================================================
# ÚLTIMO VALOR E HISTÓRICO
# =============================================================================

class TestLatestAndHistory:

    def test_latest_per_tag(self, conn):
        latest = get_latest_by_key(conn, "dev1")
        assert [(v.tag, v.value, v.timestamp) for v in latest] == [
            ("pressure", 5.0, T0),
            ("temp", 2.0, T0 + 1000),
        ]

    def test_latest_by_numeric_id(self, conn, device_id):
        assert len(get_latest_by_key(conn, str(device_id))) == 2

    def test_unknown_device_is_empty(self, conn):
        assert get_latest_by_key(conn, "nope") == []
        assert get_historical_data(conn, HistoryFilters(device_ref="nope")) == []
        assert get_sensors(conn, "nope") == []

    def test_history_newest_first(self, conn):
        rows = get_historical_data(conn, HistoryFilters(device_ref="dev1", tag="temp"))
        assert [(r.value, r.timestamp) for r in rows] == [(2.0, T0 + 1000), (1.0, T0)]

    def test_history_range_is_inclusive(self, conn):
        filters = HistoryFilters(device_ref="dev1", start=T0 + 1000, end=T0 + 1000)
        assert [r.value for r in get_historical_data(conn, filters)] == [2.0]

    def test_history_limit(self, conn):
        rows = get_historical_data(conn, HistoryFilters(device_ref="dev1", limit=1))
        assert len(rows) == 1


class TestPagination:

    def test_middle_page(self, conn):
        page = get_historical_data_paginated(
            conn, HistoryFilters(device_ref="dev1", page=1, page_size=1)
        )
        assert len(page.data) == 1
        p = page.pagination
        assert (p.total, p.total_pages, p.has_next, p.has_prev) == (3, 3, True, True)

    def test_unknown_device_page(self, conn):
        page = get_historical_data_paginated(conn, HistoryFilters(device_ref="nope"))
        assert page.data == [] and page.pagination.total == 0

    @pytest.mark.parametrize(
        "page,page_size,expected",
        [
            (-3, 10, (0, 10)),
            (0, 10_000, (0, 500)),
            (0, 0, (0, 50)),
            (2, -5, (2, 1)),
        ],
    )
    def test_out_of_range_values_are_clamped(self, page, page_size, expected):
        filters = HistoryFilters(page=page, page_size=page_size)
        assert (filters.page, filters.page_size) == expected


# =============================================================================
# ROLLUPS, DISPOSITIVOS Y STATS
# =============================================================================

class TestRollupQuery:

    def test_rollup_rows(self, engine, device_id, clock):
        clock.now = T0 + 2 * 60_000
        RollupAggregator(engine, clock=clock).run_tick(Resolution.ONE_MINUTE)

        with engine.connect() as conn:
            rows = get_rollup(conn, Resolution.ONE_MINUTE, "dev1")
        assert [(r.tag, r.bucket_start, r.avg, r.min, r.max, r.count) for r in rows] == [
            ("pressure", T0, 5.0, 5.0, 5.0, 1),
            ("temp", T0, 1.5, 1.0, 2.0, 2),
        ]

    def test_rollup_empty_before_tick(self, conn):
        assert get_rollup(conn, Resolution.ONE_HOUR, "dev1") == []


class TestDevicesAndStats:

    def test_derive_status(self):
        assert derive_status(None, T0, 60) == "offline"
        assert derive_status(T0 - 60_000, T0, 60) == "online"
        assert derive_status(T0 - 60_001, T0, 60) == "offline"

    def test_devices_status_derived_at_read_time(self, conn):
        [device] = get_devices(conn, now=T0, offline_after_seconds=60)
        assert (device.name, device.status, device.last_seen) == ("dev1", "online", T0)

        [device] = get_devices(conn, now=T0 + 61_000, offline_after_seconds=60)
        assert device.status == "offline"

    def test_sensors(self, conn):
        assert [s.tag_name for s in get_sensors(conn, "dev1")] == ["pressure", "temp"]

    def test_stats(self, conn):
        stats = get_stats(conn)
        assert (stats.total_records, stats.total_devices, stats.total_sensors) == (3, 1, 2)
        assert stats.rollup_rows == {"1min": 0, "5min": 0, "10min": 0, "1hour": 0}
        assert stats.database_size_mb is None
