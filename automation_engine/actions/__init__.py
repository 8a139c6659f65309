"""Built-in action handlers."""

from typing import Optional

import requests

from ..core.action_registry import ActionRegistry
from .flow import DelayHandler, LogHandler
from .notifications import LoggingNotificationSender, NotificationSender, NotifyHandler
from .records import FlagHandler, InMemoryRecordStore, RecordMutator, UpdateRecordHandler
from .webhook import WebhookHandler


def register_builtin_actions(
    registry: ActionRegistry,
    notification_sender: Optional[NotificationSender] = None,
    record_mutator: Optional[RecordMutator] = None,
    http_session: Optional[requests.Session] = None,
) -> ActionRegistry:
    """Register notify, update_record, flag, webhook, delay and log.

    Without a sender, notifications are only logged; without a mutator,
    record changes go to an in-memory store.
    """
    mutator = record_mutator or InMemoryRecordStore()
    registry.register(NotifyHandler(notification_sender or LoggingNotificationSender()))
    registry.register(UpdateRecordHandler(mutator))
    registry.register(FlagHandler(mutator))
    registry.register(WebhookHandler(http_session))
    registry.register(DelayHandler())
    registry.register(LogHandler())
    return registry


__all__ = [
    "register_builtin_actions",
    "DelayHandler",
    "LogHandler",
    "NotificationSender",
    "LoggingNotificationSender",
    "NotifyHandler",
    "RecordMutator",
    "InMemoryRecordStore",
    "UpdateRecordHandler",
    "FlagHandler",
    "WebhookHandler",
]
