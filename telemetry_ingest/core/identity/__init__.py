"""Identity layer - Dispositivos y sensores."""

from .registry import IdentityRegistry

__all__ = ["IdentityRegistry"]
