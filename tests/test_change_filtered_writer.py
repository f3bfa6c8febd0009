"""Tests del escritor filtrado por cambios."""

import threading
from unittest.mock import MagicMock

import pytest
import redis
from sqlalchemy import text

from telemetry_ingest.core.dedup import (
    ChangeFilteredWriter,
    InMemoryLastValueStore,
    RedisLastValueStore,
    coerce_numeric,
)
from telemetry_ingest.core.errors import StorageError

from .conftest import T0


def raw_rows(engine):
    with engine.connect() as conn:
        return conn.execute(
            text('SELECT sensor_id, "timestamp", value, quality FROM raw_history ORDER BY "timestamp"')
        ).fetchall()


@pytest.fixture
def device_id(registry):
    return registry.resolve_device("hmi-1")


@pytest.fixture
def writer(engine, registry):
    return ChangeFilteredWriter(engine, resolve_sensor=registry.resolve_sensor)


# =============================================================================
# DEDUPLICACIÓN
# =============================================================================

class TestDedup:

    def test_first_sample_is_always_written(self, writer, device_id, engine):
        result = writer.maybe_write(device_id, "temp", 21.0, T0)
        assert result.written and result.changed and result.error is None
        assert len(raw_rows(engine)) == 1

    def test_v1_v2_v2_v3_writes_three_rows(self, writer, device_id, engine):
        for i, value in enumerate([1.0, 2.0, 2.0, 3.0]):
            writer.maybe_write(device_id, "temp", value, T0 + i * 1000)

        rows = raw_rows(engine)
        assert [r.value for r in rows] == [1.0, 2.0, 3.0]
        assert [r.timestamp for r in rows] == [T0, T0 + 1000, T0 + 3000]
        assert all(r.quality == 1 for r in rows)
        assert writer.stats == {"written": 3, "suppressed": 1, "skipped": 0, "failed": 0}

    def test_repeated_value_is_suppressed(self, writer, device_id):
        writer.maybe_write(device_id, "temp", 5, T0)
        result = writer.maybe_write(device_id, "temp", 5.0, T0 + 1000)
        assert not result.written
        assert not result.changed
        assert result.error is None

    def test_keys_are_independent(self, writer, device_id, engine):
        writer.maybe_write(device_id, "a", 1, T0)
        writer.maybe_write(device_id, "b", 1, T0)
        assert len(raw_rows(engine)) == 2

    def test_same_timestamp_upserts(self, writer, device_id, engine):
        writer.maybe_write(device_id, "temp", 1, T0)
        writer.maybe_write(device_id, "temp", 2, T0)
        rows = raw_rows(engine)
        assert len(rows) == 1
        assert rows[0].value == 2.0

    def test_sensor_resolved_only_when_writing(self, engine, device_id):
        resolver = MagicMock(return_value=1)
        writer = ChangeFilteredWriter(engine, resolve_sensor=resolver)
        with engine.begin() as conn:
            conn.execute(text("INSERT INTO sensors (sensor_id, device_id, tag_name, data_type) VALUES (1, :d, 'temp', 'DOUBLE')"), {"d": device_id})

        writer.maybe_write(device_id, "temp", 1, T0)
        writer.maybe_write(device_id, "temp", 1, T0 + 1000)
        assert resolver.call_count == 1

    def test_bool_values_are_stored_as_numbers(self, writer, device_id, engine):
        writer.maybe_write(device_id, "running", True, T0)
        writer.maybe_write(device_id, "running", False, T0 + 1000)
        assert [r.value for r in raw_rows(engine)] == [1.0, 0.0]
        with engine.connect() as conn:
            assert conn.execute(text("SELECT data_type FROM sensors WHERE tag_name = 'running'")).scalar_one() == "BOOL"

    def test_non_numeric_values_are_skipped(self, writer, device_id, engine):
        result = writer.maybe_write(device_id, "label", "ON", T0)
        assert result.skipped
        assert not result.written
        assert raw_rows(engine) == []

    def test_non_numeric_value_breaks_the_run_of_equal_values(self, writer, device_id, engine):
        results = [
            writer.maybe_write(device_id, "temp", value, ts)
            for value, ts in ((5, T0), ("ERR", T0 + 1000), (5, T0 + 2000))
        ]

        assert [r.written for r in results] == [True, False, True]
        assert results[1].skipped
        assert [(r.value, r.timestamp) for r in raw_rows(engine)] == [(5.0, T0), (5.0, T0 + 2000)]

    def test_null_value_also_breaks_the_run(self, writer, device_id, engine):
        for value, ts in ((5, T0), (None, T0 + 1000), (5, T0 + 2000)):
            writer.maybe_write(device_id, "temp", value, ts)
        assert len(raw_rows(engine)) == 2


# =============================================================================
# CONCURRENCIA
# =============================================================================

class TestConcurrency:

    def test_same_value_from_many_threads_is_written_once(self, writer, device_id, engine):
        n = 16
        barrier = threading.Barrier(n)
        results = []
        lock = threading.Lock()

        def worker(i):
            barrier.wait()
            result = writer.maybe_write(device_id, "temp", 7.0, T0 + i)
            with lock:
                results.append(result)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(r.written for r in results) == 1
        assert len(raw_rows(engine)) == 1
        assert writer.stats == {"written": 1, "suppressed": n - 1, "skipped": 0, "failed": 0}


# =============================================================================
# FALLOS
# =============================================================================

class TestFailures:

    def test_failure_is_reported_and_cache_not_rolled_back(self, engine, device_id):
        resolver = MagicMock(side_effect=StorageError("db down"))
        writer = ChangeFilteredWriter(engine, resolve_sensor=resolver)

        result = writer.maybe_write(device_id, "temp", 1, T0)
        assert not result.written
        assert result.changed
        assert "db down" in result.error

        # El cache ya tiene el valor: el mismo valor se suprime.
        again = writer.maybe_write(device_id, "temp", 1, T0 + 1000)
        assert not again.changed
        assert writer.stats["failed"] == 1

    def test_unreadable_cache_counts_as_missing(self, engine, registry, device_id):
        store = MagicMock()
        store.get.side_effect = StorageError("redis down")
        writer = ChangeFilteredWriter(engine, resolve_sensor=registry.resolve_sensor, store=store)

        assert writer.maybe_write(device_id, "temp", 1, T0).written
        assert writer.maybe_write(device_id, "temp", 1, T0 + 1000).written


# =============================================================================
# STORES
# =============================================================================

class TestStores:

    def test_in_memory_store(self):
        store = InMemoryLastValueStore()
        assert store.get((1, "a")) is None
        store.set((1, "a"), 2.5)
        assert store.get((1, "a")) == 2.5
        assert len(store) == 1
        store.delete((1, "a"))
        store.delete((1, "missing"))
        assert store.get((1, "a")) is None

    def test_redis_store_roundtrip(self):
        client = MagicMock()
        store = RedisLastValueStore(client)
        store.set((3, "temp"), 21.5)
        client.set.assert_called_once_with("lastval:3:temp", "21.5")

        client.get.return_value = b"21.5"
        assert store.get((3, "temp")) == 21.5
        client.get.assert_called_with("lastval:3:temp")

    def test_redis_store_delete(self):
        client = MagicMock()
        RedisLastValueStore(client).delete((3, "temp"))
        client.delete.assert_called_once_with("lastval:3:temp")

    def test_redis_store_missing_key(self):
        client = MagicMock()
        client.get.return_value = None
        assert RedisLastValueStore(client).get((1, "x")) is None

    def test_redis_errors_become_storage_errors(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("boom")
        with pytest.raises(StorageError):
            RedisLastValueStore(client).get((1, "x"))

    def test_cache_delete_failure_is_tolerated(self, engine, registry, device_id):
        store = InMemoryLastValueStore()
        store.delete = MagicMock(side_effect=StorageError("redis down"))
        writer = ChangeFilteredWriter(engine, resolve_sensor=registry.resolve_sensor, store=store)

        assert writer.maybe_write(device_id, "temp", "ERR", T0).skipped


class TestCoerceNumeric:

    @pytest.mark.parametrize(
        "value,expected",
        [
            (1, 1.0),
            (2.5, 2.5),
            ("3.25", 3.25),
            (True, 1.0),
            (False, 0.0),
            ("abc", None),
            (None, None),
            ("nan", None),
            ("inf", None),
        ],
    )
    def test_coerce(self, value, expected):
        assert coerce_numeric(value) == expected
