"""Variantes de sobre (envelope) usadas históricamente por los HMI Xinje.

Tres formas conviven en campo:

- ``plain``:            {"Unix": ..., "Version": "V1.0", "Pub_Data": {...}}
- ``variant_wrapped``:  {"Variant": [ {plain} ]}
- ``list_wrapped``:     [ {plain} ]

Cada variante tiene su propia función de decodificación; la variante se elige
por inspección estructural y los envoltorios se quitan hasta llegar a ``plain``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import EnvelopeValidationError

KNOWN_VERSIONS = frozenset({"V1.0"})
MAX_WRAPPER_DEPTH = 4


class EnvelopeKind(str, Enum):
    PLAIN = "plain"
    VARIANT_WRAPPED = "variant_wrapped"
    LIST_WRAPPED = "list_wrapped"


@dataclass(frozen=True)
class PlainEnvelope:
    body: Dict[str, Any]
    kind: EnvelopeKind = EnvelopeKind.PLAIN


@dataclass(frozen=True)
class VariantWrappedEnvelope:
    inner: Any
    kind: EnvelopeKind = EnvelopeKind.VARIANT_WRAPPED


@dataclass(frozen=True)
class ListWrappedEnvelope:
    inner: Any
    kind: EnvelopeKind = EnvelopeKind.LIST_WRAPPED


Envelope = Union[PlainEnvelope, VariantWrappedEnvelope, ListWrappedEnvelope]


class HmiEnvelope(BaseModel):
    """Sobre ya desenvuelto y validado.

    Solo ``Unix`` y ``Version`` son obligatorios; los campos de datos
    (``Pub_Data``, ``Configlist``, ``Write_Data``) dependen del topic.
    """

    # Solo los nombres del protocolo (``Unix``, ``Version``...) validan.
    model_config = ConfigDict(extra="allow")

    unix: int = Field(..., alias="Unix")
    version: str = Field(..., alias="Version")
    pub_data: Optional[Any] = Field(default=None, alias="Pub_Data")
    config_list: Optional[Any] = Field(default=None, alias="Configlist")

    @field_validator("unix", mode="before")
    @classmethod
    def parse_unix(cls, v):
        if isinstance(v, bool) or v is None:
            raise ValueError("Unix must be a millisecond timestamp")
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("Unix is empty")
            try:
                v = float(v)
            except ValueError:
                raise ValueError(f"Unix is not numeric: {v!r}")
        if not isinstance(v, (int, float)):
            raise ValueError("Unix must be a millisecond timestamp")
        if v != v or v <= 0:
            raise ValueError("Unix must be a positive timestamp")
        return int(v)

    @field_validator("version", mode="before")
    @classmethod
    def parse_version(cls, v):
        if v is None:
            raise ValueError("Version is required")
        v = str(v).strip()
        if not v:
            raise ValueError("Version is empty")
        return v

    @property
    def is_known_version(self) -> bool:
        return self.version in KNOWN_VERSIONS


def classify(obj: Any) -> Envelope:
    """Selecciona la variante de sobre por inspección estructural."""
    if isinstance(obj, list):
        if len(obj) != 1:
            raise EnvelopeValidationError(
                f"Wrapper list must hold exactly one element (got {len(obj)})"
            )
        return ListWrappedEnvelope(inner=obj[0])

    if not isinstance(obj, dict):
        raise EnvelopeValidationError(f"Envelope must be an object, got {type(obj).__name__}")

    variant = obj.get("Variant")
    if isinstance(variant, list) and "Unix" not in obj:
        if not variant:
            raise EnvelopeValidationError("Variant wrapper is empty")
        return VariantWrappedEnvelope(inner=variant[0])

    return PlainEnvelope(body=obj)


def _decode_plain(envelope: PlainEnvelope) -> Dict[str, Any]:
    return envelope.body


def _decode_variant(envelope: VariantWrappedEnvelope) -> Any:
    return envelope.inner


def _decode_list(envelope: ListWrappedEnvelope) -> Any:
    return envelope.inner


_DECODERS: Dict[EnvelopeKind, Callable[[Any], Any]] = {
    EnvelopeKind.PLAIN: _decode_plain,
    EnvelopeKind.VARIANT_WRAPPED: _decode_variant,
    EnvelopeKind.LIST_WRAPPED: _decode_list,
}


def unwrap(obj: Any) -> Dict[str, Any]:
    """Quita envoltorios (anidados incluidos) hasta llegar al sobre plano."""
    current = obj
    for _ in range(MAX_WRAPPER_DEPTH + 1):
        envelope = classify(current)
        decoded = _DECODERS[envelope.kind](envelope)
        if envelope.kind is EnvelopeKind.PLAIN:
            return decoded
        current = decoded

    raise EnvelopeValidationError(f"Envelope nested deeper than {MAX_WRAPPER_DEPTH} wrappers")


def decode_envelope(obj: Any) -> HmiEnvelope:
    """Desenvuelve y valida un sobre ya parseado."""
    body = unwrap(obj)
    try:
        return HmiEnvelope.model_validate(body)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise EnvelopeValidationError(f"Invalid envelope: {details}") from e
