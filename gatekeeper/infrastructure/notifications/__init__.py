"""Notification adapters."""

from gatekeeper.infrastructure.notifications.logging_notifier import LoggingNotifier

__all__ = ["LoggingNotifier"]
