"""Tests del pipeline completo: handler → normalizador → registro → escritor → fan-out.

Ejecutar:
    pytest tests/test_pipeline.py -v
"""

import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy import text

from telemetry_ingest.core.dedup.writer import ChangeFilteredWriter
from telemetry_ingest.core.domain import Sample, SampleBatch
from telemetry_ingest.core.errors import StorageError
from telemetry_ingest.core.fanout import FanoutNotifier
from telemetry_ingest.core.pipeline import IngestionPipeline
from telemetry_ingest.core.transport import InboundMessage, MessageHandler

from .conftest import T0


def message(pub_data, unix=T0, version="V1.0") -> bytes:
    return json.dumps({"Unix": unix, "Version": version, "Pub_Data": pub_data}).encode("utf-8")


def raw_rows(engine):
    with engine.connect() as conn:
        return conn.execute(
            text(
                """
                SELECT s.tag_name, r.value, r."timestamp"
                FROM raw_history r
                JOIN sensors s ON s.sensor_id = r.sensor_id
                ORDER BY r."timestamp", s.tag_name
                """
            )
        ).all()


@pytest.fixture
def notifier() -> FanoutNotifier:
    return FanoutNotifier()


@pytest.fixture
def pipeline(engine, registry, notifier) -> IngestionPipeline:
    writer = ChangeFilteredWriter(engine, resolve_sensor=registry.resolve_sensor)
    return IngestionPipeline(registry, writer, notifier)


@pytest.fixture
def handler(pipeline) -> MessageHandler:
    return MessageHandler(pipeline)


# =============================================================================
# PIPELINE
# =============================================================================

class TestIngestionPipeline:

    def test_first_batch_is_written_and_fanned_out(self, pipeline, notifier, engine):
        seen = []
        notifier.subscribe(seen.append)
        batch = SampleBatch(
            device_ref="dev1",
            samples=(
                Sample(tag="temp", value=21.5, timestamp_ms=T0),
                Sample(tag="run", value=True, timestamp_ms=T0),
            ),
            protocol_version="V1.0",
            timestamp_ms=T0,
        )

        result = pipeline.process(batch)

        assert result.ok
        assert result.device_id is not None
        assert (result.received, result.written) == (2, 2)
        assert seen == [batch]
        assert [(r.tag_name, r.value) for r in raw_rows(engine)] == [("run", 1.0), ("temp", 21.5)]

    def test_repeated_values_are_suppressed_but_still_fanned_out(self, pipeline, notifier):
        seen = []
        notifier.subscribe(seen.append)
        first = SampleBatch("dev1", (Sample("temp", 20, T0),), "V1.0", T0)
        second = SampleBatch("dev1", (Sample("temp", 20, T0 + 1000),), "V1.0", T0 + 1000)

        pipeline.process(first)
        result = pipeline.process(second)

        assert (result.written, result.suppressed) == (0, 1)
        assert len(seen) == 2

    def test_non_numeric_value_is_skipped(self, pipeline):
        batch = SampleBatch("dev1", (Sample("mode", "AUTO", T0),), "V1.0", T0)
        result = pipeline.process(batch)
        assert (result.written, result.skipped, result.failed) == (0, 1, 0)

    def test_storage_failure_still_reaches_observers(self, engine, notifier):
        registry = MagicMock()
        registry.resolve_device.side_effect = StorageError("database down")
        writer = MagicMock()
        pipeline = IngestionPipeline(registry, writer, notifier)
        observer = MagicMock()
        notifier.subscribe(observer)

        batch = SampleBatch("dev1", (Sample("temp", 1.0, T0),), "V1.0", T0)
        result = pipeline.process(batch)

        assert not result.ok
        assert result.failed == 1
        writer.maybe_write.assert_not_called()
        observer.assert_called_once_with(batch)

    def test_register_device_swallows_storage_error(self):
        registry = MagicMock()
        registry.resolve_device.side_effect = StorageError("database down")
        pipeline = IngestionPipeline(registry, MagicMock())
        assert pipeline.register_device("dev1") is None


# =============================================================================
# HANDLER
# =============================================================================

class TestMessageHandler:

    def test_pub_data_end_to_end(self, handler, engine):
        result = handler.handle("dev1/pub_data", message({"HMI": {"temp": 21.5, "pressure": "3.5"}}))

        assert result is not None and result.written == 2
        assert [(r.tag_name, r.value, r.timestamp) for r in raw_rows(engine)] == [
            ("pressure", 3.5, T0),
            ("temp", 21.5, T0),
        ]
        assert handler.stats.processed == 1

    def test_change_filter_across_messages(self, handler, engine):
        handler.handle("dev1/pub_data", message({"HMI": {"temp": 10}}, unix=T0))
        handler.handle("dev1/pub_data", message({"HMI": {"temp": 10}}, unix=T0 + 1000))
        handler.handle("dev1/pub_data", message({"HMI": {"temp": 11}}, unix=T0 + 2000))

        assert [(r.value, r.timestamp) for r in raw_rows(engine)] == [
            (10.0, T0),
            (11.0, T0 + 2000),
        ]
        assert handler.stats.samples_suppressed == 1

    def test_extra_devices_get_qualified_tags(self, handler, engine):
        handler.handle(
            "dev1/pub_data",
            message({"HMI": {"temp": 1}, "PLC2": [{"tag_name": "speed", "value": 7}]}),
        )
        assert sorted(r.tag_name for r in raw_rows(engine)) == ["PLC2.speed", "temp"]

    def test_wrapped_envelope(self, handler, engine):
        body = json.dumps([{"Variant": [{"Unix": T0, "Version": "V1.0", "Pub_Data": {"HMI": {"t": 3}}}]}])
        result = handler.handle("dev1/pub_data", body.encode("utf-8"))
        assert result.written == 1

    def test_invalid_json_counts_parse_error(self, handler):
        assert handler.handle("dev1/pub_data", b"{not json") is None
        assert handler.stats.parse_errors == 1

    def test_missing_unix_counts_invalid(self, handler, engine):
        body = json.dumps({"Version": "V1.0", "Pub_Data": {"HMI": {"t": 1}}}).encode("utf-8")
        assert handler.handle("dev1/pub_data", body) is None
        assert handler.stats.invalid == 1
        assert raw_rows(engine) == []

    def test_configlist_registers_device(self, handler, registry):
        body = json.dumps({"Unix": T0, "Version": "V1.0", "Configlist": [{"name": "temp"}]})
        assert handler.handle("dev9/pub_configlist", body.encode("utf-8")) is None
        assert registry.find_device("dev9") is not None

    def test_write_reply_is_only_logged(self, handler, registry):
        body = json.dumps({"Unix": T0, "Version": "V1.0", "Write_Reply": {"temp": "ok"}})
        assert handler.handle("dev3/write_reply", body.encode("utf-8")) is None
        assert registry.find_device("dev3") is None

    def test_unknown_topic_is_ignored(self, handler):
        assert handler.handle("dev1/something_else", b"{}") is None
        assert handler.stats.received == 1
        assert handler.stats.invalid == 0

    def test_handle_message_uses_inbound_message(self, handler):
        msg = InboundMessage(topic="dev1/pub_data", payload=message({"HMI": {"temp": 1}}))
        assert msg.device_ref == "dev1"
        assert handler.handle_message(msg).written == 1
