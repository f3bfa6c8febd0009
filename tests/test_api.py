"""Tests de los endpoints HTTP con el receptor sustituido por dependencias."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from telemetry_ingest.core.dedup.writer import ChangeFilteredWriter
from telemetry_ingest.core.errors import TransportError
from telemetry_ingest.core.transport import CommandResult
from telemetry_ingest.endpoints.deps import get_active_receiver
from telemetry_ingest.main import app

from .conftest import T0, make_settings


@pytest.fixture
def receiver(engine, registry):
    device_id = registry.resolve_device("dev1")
    writer = ChangeFilteredWriter(engine, resolve_sensor=registry.resolve_sensor)
    writer.maybe_write(device_id, "temp", 20.0, T0)
    writer.maybe_write(device_id, "temp", 21.0, T0 + 1000)

    commands = MagicMock()
    commands.send_command.return_value = CommandResult(
        device_ref="dev1", topic="dev1/write_data", recorded=True
    )
    return SimpleNamespace(
        engine=engine,
        settings=make_settings(),
        commands=commands,
        stats={"running": True},
        is_connected=True,
        health_check=lambda: {"healthy": True},
    )


@pytest.fixture
def client(receiver):
    app.dependency_overrides[get_active_receiver] = lambda: receiver
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        assert client.get("/ready").json() == {"status": "ready"}

    def test_receiver_health(self, client):
        assert client.get("/health/receiver").json() == {"healthy": True}

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "hmi_ingest_queue_depth" in response.text

    def test_not_started_receiver_is_503(self):
        app.dependency_overrides.clear()
        assert TestClient(app).get("/api/devices").status_code == 503


class TestQueryEndpoints:

    def test_devices(self, client):
        body = client.get("/api/devices").json()
        assert body["total"] == 1
        assert body["devices"][0]["name"] == "dev1"

    def test_latest(self, client):
        assert [(v["tag"], v["value"]) for v in client.get("/api/devices/dev1/latest").json()] == [
            ("temp", 21.0)
        ]

    def test_sensors(self, client):
        assert [s["tag_name"] for s in client.get("/api/devices/dev1/sensors").json()] == ["temp"]

    def test_history(self, client):
        rows = client.get("/api/devices/dev1/history", params={"tag": "temp", "limit": 1}).json()
        assert [(r["value"], r["timestamp"]) for r in rows] == [(21.0, T0 + 1000)]

    def test_history_paginated_uses_page_size_alias(self, client):
        body = client.get(
            "/api/devices/dev1/history/paginated", params={"page": 0, "pageSize": 1}
        ).json()
        assert len(body["data"]) == 1
        assert body["pagination"]["total"] == 2
        assert body["pagination"]["has_next"] is True

    def test_rollup_resolution(self, client):
        assert client.get("/api/devices/dev1/history/5min").json() == []

    def test_unknown_resolution_is_404(self, client):
        assert client.get("/api/devices/dev1/history/2min").status_code == 404

    def test_stats(self, client):
        body = client.get("/api/stats").json()
        assert body["database"]["total_records"] == 2
        assert body["receiver"] == {"running": True}


class TestCommandEndpoint:

    def test_sends_write_envelope(self, client, receiver):
        response = client.post("/api/devices/dev1/command", json={"setpoint": 42})

        assert response.status_code == 200
        assert response.json()["topic"] == "dev1/write_data"
        device_ref, payload = receiver.commands.send_command.call_args.args
        assert device_ref == "dev1"
        assert payload["Version"] == "V1.0"
        assert payload["Write_Data"] == {"setpoint": 42}
        assert isinstance(payload["Unix"], int)

    def test_empty_command_is_400(self, client):
        assert client.post("/api/devices/dev1/command", json={}).status_code == 400

    def test_transport_failure_is_503(self, client, receiver):
        receiver.commands.send_command.side_effect = TransportError("broker down")
        assert client.post("/api/devices/dev1/command", json={"a": 1}).status_code == 503
