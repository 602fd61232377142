"""
Notifications Package.

Exports the NotificationDispatcher.
"""

from .dispatcher import NotificationDispatcher

__all__ = ["NotificationDispatcher"]
