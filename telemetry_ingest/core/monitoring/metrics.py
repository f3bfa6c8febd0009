"""Métricas Prometheus del servicio."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

MESSAGES_RECEIVED = Counter(
    "hmi_ingest_messages_total",
    "Total MQTT messages handled",
    ["topic_type", "status"],  # processed, parse_error, invalid, failed
)

SAMPLES_PROCESSED = Counter(
    "hmi_ingest_samples_total",
    "Samples processed by the change-filtered writer",
    ["outcome"],  # written, suppressed, skipped, failed
)

PROCESSING_LATENCY = Histogram(
    "hmi_ingest_processing_seconds",
    "End-to-end processing latency of one message",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

QUEUE_DEPTH = Gauge(
    "hmi_ingest_queue_depth",
    "Messages waiting in dispatcher queues",
)

MQTT_CONNECTED = Gauge(
    "hmi_ingest_mqtt_connected",
    "MQTT connection status",
)

OBSERVER_FAILURES = Counter(
    "hmi_fanout_observer_failures_total",
    "Fan-out observer invocations that raised",
)

ROLLUP_TICK_DURATION = Histogram(
    "hmi_rollup_tick_seconds",
    "Duration of one rollup recomputation",
    ["resolution"],
)

ROLLUP_TICK_FAILURES = Counter(
    "hmi_rollup_tick_failures_total",
    "Rollup ticks that raised",
    ["task"],
)
