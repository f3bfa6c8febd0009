"""Jerarquía de errores del núcleo de ingesta."""

from __future__ import annotations


class IngestError(Exception):
    """Error base del servicio de ingesta."""


class NormalizationError(IngestError):
    """El mensaje no pudo convertirse en un lote de muestras."""


class ParseError(NormalizationError):
    """El cuerpo del mensaje no es texto estructurado válido."""


class EnvelopeValidationError(NormalizationError):
    """El sobre se parseó pero su estructura no es válida."""


class StorageError(IngestError):
    """Fallo de almacenamiento (BD o cache externo)."""


class TransportError(IngestError):
    """El broker MQTT no está disponible o rechazó la publicación."""
