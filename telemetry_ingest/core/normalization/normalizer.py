"""Normalizador de mensajes HMI → SampleBatch.

Función pura: mismo input, mismo output; sin logging ni I/O. Las
advertencias (versión desconocida, variables descartadas) viajan en
``SampleBatch.warnings`` y es quien llama el que decide loggearlas.
"""

from __future__ import annotations

from typing import Any, Iterator, List, Optional, Tuple, Union

import orjson

from ..domain.batch import Sample, SampleBatch
from ..errors import EnvelopeValidationError, ParseError
from .envelopes import HmiEnvelope, decode_envelope

DATA_FIELD = "Pub_Data"
TAG_KEYS = ("tag_name", "key", "name", "tag")


def split_topic(topic: str) -> Tuple[str, str]:
    """Separa ``<deviceRef>/<topicType>``.

    Un topic sin prefijo devuelve deviceRef vacío.
    """
    device_ref, _, topic_type = (topic or "").rpartition("/")
    return device_ref.strip(), topic_type.strip()


def parse_body(body: Union[bytes, bytearray, memoryview, str]) -> Any:
    """Parsea el cuerpo del mensaje como JSON."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}") from e


class SampleNormalizer:
    """Convierte un mensaje ``pub_data`` en un lote plano de muestras.

    Responsabilidades:
    - Parseo del cuerpo (orjson)
    - Desenvoltura de sobres ``Variant``/lista
    - Validación de Unix + Version
    - Aplanado de contenedores de variables (dict o lista)
    """

    def normalize(self, body: Union[bytes, str], topic: str) -> SampleBatch:
        """Normaliza un mensaje.

        Raises:
            ParseError: cuerpo no es JSON válido
            EnvelopeValidationError: estructura inválida
        """
        return self.normalize_parsed(parse_body(body), topic)

    def normalize_parsed(self, data: Any, topic: str) -> SampleBatch:
        """Normaliza un cuerpo ya parseado."""
        envelope = decode_envelope(data)
        warnings: List[str] = []

        if not envelope.is_known_version:
            warnings.append(f"Unrecognized protocol version: {envelope.version}")

        containers = self._device_containers(envelope, warnings)

        device_ref, _ = split_topic(topic)
        source_name = containers[0][0] if containers else None
        if not device_ref:
            device_ref = source_name or ""
        if not device_ref:
            raise EnvelopeValidationError("No device reference in topic or data field")

        samples: List[Sample] = []
        for index, (device_name, container) in enumerate(containers):
            # Solo el primer dispositivo conserva el nombre del tag sin prefijo.
            prefix = None if index == 0 else device_name
            for tag, value in self._iter_variables(container, device_name, warnings):
                if not _is_scalar(value):
                    warnings.append(f"Variable {device_name}.{tag} is not a scalar value")
                    continue
                full_tag = f"{prefix}.{tag}" if prefix else tag
                samples.append(Sample(tag=full_tag, value=value, timestamp_ms=envelope.unix))

        return SampleBatch(
            device_ref=device_ref,
            samples=tuple(samples),
            protocol_version=envelope.version,
            timestamp_ms=envelope.unix,
            topic=topic,
            source_name=source_name,
            warnings=tuple(warnings),
        )

    def _device_containers(
        self,
        envelope: HmiEnvelope,
        warnings: List[str],
    ) -> List[Tuple[str, Any]]:
        """Extrae los pares (nombre de dispositivo, contenedor)."""
        pub_data = envelope.pub_data
        if pub_data is None:
            warnings.append(f"Envelope has no {DATA_FIELD} field")
            return []
        if not isinstance(pub_data, dict):
            raise EnvelopeValidationError(f"{DATA_FIELD} must be an object keyed by device name")

        containers: List[Tuple[str, Any]] = []
        for device_name, container in pub_data.items():
            if not isinstance(container, (dict, list)):
                warnings.append(f"Device {device_name} has no variable container")
                continue
            containers.append((str(device_name), container))
        return containers

    def _iter_variables(
        self,
        container: Union[dict, list],
        device_name: str,
        warnings: List[str],
    ) -> Iterator[Tuple[str, Any]]:
        """Itera (tag, valor) de un contenedor dict o lista."""
        if isinstance(container, dict):
            for tag, value in container.items():
                yield str(tag), value
            return

        for position, entry in enumerate(container):
            if not isinstance(entry, dict):
                warnings.append(f"Device {device_name} entry #{position} is not an object")
                continue
            tag = _entry_tag(entry)
            if tag is None:
                warnings.append(f"Device {device_name} entry #{position} has no tag name")
                continue
            yield tag, entry.get("value")


def _entry_tag(entry: dict) -> Optional[str]:
    for key in TAG_KEYS:
        tag = entry.get(key)
        if tag is not None and str(tag).strip():
            return str(tag).strip()
    return None


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (bool, int, float, str))
