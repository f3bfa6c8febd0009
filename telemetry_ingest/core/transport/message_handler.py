"""Handler de mensajes MQTT: enruta por tipo de topic."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from ..domain.batch import BatchResult
from ..errors import EnvelopeValidationError, ParseError
from ..monitoring.metrics import MESSAGES_RECEIVED, PROCESSING_LATENCY
from ..monitoring.stats import Stats
from ..normalization.envelopes import decode_envelope
from ..normalization.normalizer import SampleNormalizer, parse_body, split_topic
from ..pipeline.processor import IngestionPipeline

logger = logging.getLogger(__name__)

LOG_EVERY = 100


@dataclass(frozen=True)
class InboundMessage:
    """Mensaje tal como llega del broker (se encola hacia los workers)."""
    topic: str
    payload: bytes
    received_at: float = field(default_factory=time.time)

    @property
    def device_ref(self) -> str:
        return split_topic(self.topic)[0]


class MessageHandler:
    """Maneja mensajes MQTT y los procesa a través del pipeline.

    Responsabilidades:
    - Enrutado por tipo de topic (pub_data, pub_configlist, write_reply)
    - Normalización del sobre HMI
    - Delegación al pipeline
    - Tracking de estadísticas
    """

    def __init__(
        self,
        pipeline: IngestionPipeline,
        normalizer: Optional[SampleNormalizer] = None,
    ):
        self._pipeline = pipeline
        self._normalizer = normalizer or SampleNormalizer()
        self._stats = Stats()

    def handle_message(self, message: InboundMessage) -> Optional[BatchResult]:
        """Entrada usada por los workers del dispatcher."""
        return self.handle(message.topic, message.payload, received_at=message.received_at)

    def handle(
        self,
        topic: str,
        payload: bytes,
        received_at: Optional[float] = None,
    ) -> Optional[BatchResult]:
        """Procesa un mensaje MQTT.

        Returns:
            BatchResult para ``pub_data``; None para el resto o si se descartó
        """
        received_at = received_at or time.time()
        self._stats.record_received(received_at)
        _, topic_type = split_topic(topic)

        try:
            if topic_type == "pub_data":
                return self._handle_data(topic, payload, received_at)
            if topic_type == "pub_configlist":
                self._handle_config(topic, payload)
            elif topic_type == "write_reply":
                self._handle_write_reply(topic, payload)
            else:
                logger.info("[HANDLER] Unknown topic type %r (topic=%s)", topic_type, topic)
                MESSAGES_RECEIVED.labels(topic_type="unknown", status="ignored").inc()
            return None

        except ParseError as e:
            self._stats.record_parse_error()
            MESSAGES_RECEIVED.labels(topic_type=topic_type, status="parse_error").inc()
            logger.warning("[HANDLER] %s (topic=%s)", e, topic)
        except EnvelopeValidationError as e:
            self._stats.record_invalid()
            MESSAGES_RECEIVED.labels(topic_type=topic_type, status="invalid").inc()
            logger.warning("[HANDLER] Invalid envelope: %s (topic=%s)", e, topic)
        return None

    def _handle_data(self, topic: str, payload: bytes, received_at: float) -> BatchResult:
        batch = self._normalizer.normalize(payload, topic)
        for warning in batch.warnings:
            logger.warning("[HANDLER] %s (device=%s)", warning, batch.device_ref)

        result = self._pipeline.process(batch)
        self._stats.record_batch(result)

        status = "processed" if result.ok else "failed"
        MESSAGES_RECEIVED.labels(topic_type="pub_data", status=status).inc()
        PROCESSING_LATENCY.observe(max(time.time() - received_at, 0.0))

        if self._stats.received % LOG_EVERY == 0:
            logger.info("[HANDLER] %s", self._stats)
        return result

    def _handle_config(self, topic: str, payload: bytes) -> None:
        envelope = decode_envelope(parse_body(payload))
        device_ref, _ = split_topic(topic)
        if not device_ref:
            raise EnvelopeValidationError("Config message without device prefix")

        device_id = self._pipeline.register_device(device_ref)
        entries = envelope.config_list
        logger.info(
            "[HANDLER] Config list from device=%s device_id=%s entries=%s",
            device_ref, device_id, len(entries) if isinstance(entries, (list, dict)) else 0,
        )
        status = "processed" if device_id is not None else "failed"
        if device_id is None:
            self._stats.record_failure()
        MESSAGES_RECEIVED.labels(topic_type="pub_configlist", status=status).inc()

    def _handle_write_reply(self, topic: str, payload: bytes) -> None:
        envelope = decode_envelope(parse_body(payload))
        device_ref, _ = split_topic(topic)
        extra = envelope.model_extra or {}
        logger.info(
            "[HANDLER] Write reply from device=%s unix=%s data=%s",
            device_ref, envelope.unix, extra.get("Write_Reply", extra),
        )
        MESSAGES_RECEIVED.labels(topic_type="write_reply", status="processed").inc()

    @property
    def stats(self) -> Stats:
        return self._stats
