"""Background scheduler for notifications."""

from .dispatcher import NotificationDispatcher

__all__ = ["NotificationDispatcher"]
