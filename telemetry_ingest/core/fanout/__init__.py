"""Fan-out layer - Notificación a observadores."""

from .notifier import FanoutNotifier, Observer

__all__ = ["FanoutNotifier", "Observer"]
