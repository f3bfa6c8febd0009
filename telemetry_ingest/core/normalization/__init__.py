"""Normalization layer - Sobres HMI → lotes de muestras."""

from .envelopes import EnvelopeKind, HmiEnvelope, classify, decode_envelope, unwrap
from .normalizer import SampleNormalizer, parse_body, split_topic

__all__ = [
    "EnvelopeKind",
    "HmiEnvelope",
    "SampleNormalizer",
    "classify",
    "decode_envelope",
    "parse_body",
    "split_topic",
    "unwrap",
]
