"""Tests del registro de identidad (dispositivos y sensores)."""

import threading

import pytest
from sqlalchemy import create_engine, text

from telemetry_ingest.core.errors import StorageError
from telemetry_ingest.core.identity import IdentityRegistry
from telemetry_ingest.core.storage.schema import ensure_schema

from .conftest import T0


def device_row(engine, device_id):
    with engine.connect() as conn:
        return conn.execute(
            text("SELECT * FROM devices WHERE device_id = :id"), {"id": device_id}
        ).mappings().one()


class TestResolveDevice:

    def test_creates_device_online(self, registry, engine):
        device_id = registry.resolve_device("hmi-1")
        row = device_row(engine, device_id)
        assert row["name"] == "hmi-1"
        assert row["status"] == "online"
        assert row["type"] == "HMI"
        assert row["last_seen"] == T0
        assert row["created_at"] == T0

    def test_is_idempotent(self, registry, engine):
        first = registry.resolve_device("hmi-1")
        second = registry.resolve_device("hmi-1")
        assert first == second
        with engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM devices")).scalar_one() == 1

    def test_refreshes_last_seen(self, registry, engine, clock):
        device_id = registry.resolve_device("hmi-1")
        clock.advance(5_000)
        registry.resolve_device("hmi-1")
        assert device_row(engine, device_id)["last_seen"] == T0 + 5_000

    def test_numeric_and_text_refs_are_the_same_device(self, registry):
        assert registry.resolve_device(7) == registry.resolve_device("7")

    def test_ref_matches_device_id(self, registry):
        device_id = registry.resolve_device("alpha")
        assert registry.resolve_device(str(device_id)) == device_id
        assert registry.find_device(device_id) == device_id

    def test_name_equal_to_other_id_resolves_by_name(self, registry, engine):
        alpha = registry.resolve_device("alpha")
        with engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO devices (name, type, status, last_seen, created_at) "
                    "VALUES (:name, 'HMI', 'online', 0, 0)"
                ),
                {"name": str(alpha)},
            )
        named = registry.find_device(str(alpha))
        assert named is not None
        assert named != alpha

    def test_metadata_merge_never_overwrites_with_null(self, registry, engine):
        device_id = registry.resolve_device("hmi-1", location="Planta A", description="Linea 1")
        registry.resolve_device("hmi-1")
        row = device_row(engine, device_id)
        assert row["location"] == "Planta A"
        assert row["description"] == "Linea 1"

        registry.resolve_device("hmi-1", location="Planta B")
        row = device_row(engine, device_id)
        assert row["location"] == "Planta B"
        assert row["description"] == "Linea 1"

    def test_empty_ref_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.resolve_device("  ")

    def test_find_device_does_not_create(self, registry, engine):
        assert registry.find_device("ghost") is None
        with engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM devices")).scalar_one() == 0

    def test_storage_failure_raises_storage_error(self, engine, clock):
        registry = IdentityRegistry(engine, clock=clock)
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE sensors"))
            conn.execute(text("DROP TABLE devices"))
        with pytest.raises(StorageError):
            registry.resolve_device("hmi-1")


class TestResolveSensor:

    def test_creates_and_reuses_sensor(self, registry):
        device_id = registry.resolve_device("hmi-1")
        first = registry.resolve_sensor(device_id, "temp")
        registry.clear_cache()
        assert registry.resolve_sensor(device_id, "temp") == first

    def test_same_tag_on_two_devices_is_two_sensors(self, registry):
        a = registry.resolve_device("a")
        b = registry.resolve_device("b")
        assert registry.resolve_sensor(a, "temp") != registry.resolve_sensor(b, "temp")

    def test_data_type_recorded(self, registry, engine):
        device_id = registry.resolve_device("hmi-1")
        sensor_id = registry.resolve_sensor(device_id, "running", "BOOL")
        with engine.connect() as conn:
            data_type = conn.execute(
                text("SELECT data_type FROM sensors WHERE sensor_id = :id"), {"id": sensor_id}
            ).scalar_one()
        assert data_type == "BOOL"

    def test_cache_is_bounded(self, engine, clock):
        registry = IdentityRegistry(engine, clock=clock, max_cache_size=2)
        device_id = registry.resolve_device("hmi-1")
        for tag in ("a", "b", "c"):
            registry.resolve_sensor(device_id, tag)
        assert registry.cache_size == 2

    def test_concurrent_first_sight_yields_one_sensor(self, registry, engine):
        device_id = registry.resolve_device("hmi-1")
        results = []
        errors = []

        def worker():
            try:
                results.append(registry.resolve_sensor(device_id, "temp"))
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(set(results)) == 1
        with engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM sensors")).scalar_one() == 1

    def test_second_registry_reuses_existing_sensor(self, engine, clock):
        first = IdentityRegistry(engine, clock=clock)
        second = IdentityRegistry(engine, clock=clock)
        device_id = first.resolve_device("hmi-1")

        sensor_id = first.resolve_sensor(device_id, "temp")

        assert second.cache_size == 0
        assert second.resolve_sensor(device_id, "temp") == sensor_id
        assert second.resolve_device("hmi-1") == device_id

    def test_concurrent_first_sight_across_registries(self, tmp_path, clock):
        # Cada registro tiene sus propios locks: solo la BD arbitra.
        engine = create_engine(
            f"sqlite:///{tmp_path / 'registry.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
            future=True,
        )
        ensure_schema(engine)
        registries = [IdentityRegistry(engine, clock=clock) for _ in range(2)]
        device_id = registries[0].resolve_device("hmi-1")

        n = 8
        barrier = threading.Barrier(n)
        results = []
        errors = []

        def worker(i):
            barrier.wait()
            try:
                results.append(registries[i % 2].resolve_sensor(device_id, "temp"))
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        try:
            assert errors == []
            assert len(results) == n
            assert len(set(results)) == 1
            with engine.connect() as conn:
                assert conn.execute(text("SELECT COUNT(*) FROM sensors")).scalar_one() == 1
        finally:
            engine.dispose()
