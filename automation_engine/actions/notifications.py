"""Notification actions."""

import uuid
from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..core.action_registry import ActionHandler
from ..core.logging import get_logger
from ..models.execution import ActionResult, ExecutionContext

logger = get_logger(__name__)


class NotificationSender(ABC):
    """Outbound delivery channel (email, chat, in-app) supplied by the host application."""

    @abstractmethod
    def send(self, channel: str, recipients: List[str], subject: str, message: str) -> Optional[str]:
        """Deliver a message and return a provider message id if there is one."""


class LoggingNotificationSender(NotificationSender):
    """Sender that only writes notifications to the log. Used when no real sender is configured."""

    def send(self, channel: str, recipients: List[str], subject: str, message: str) -> Optional[str]:
        message_id = str(uuid.uuid4())
        logger.info(f"[{channel}] to {', '.join(recipients)}: {subject or '(no subject)'} - {message}")
        return message_id


class NotifyConfig(BaseModel):
    recipients: List[str] = Field(..., description="Addresses or user ids to notify")
    message: str = Field(..., description="Message body; supports {{path}} placeholders")
    subject: str = Field("", description="Optional subject line")
    channel: str = Field("email", description="Delivery channel understood by the sender")

    @field_validator('recipients', mode='before')
    @classmethod
    def split_recipients(cls, recipients):
        """Accept a single recipient or a comma separated string."""
        if isinstance(recipients, str):
            recipients = [part.strip() for part in recipients.split(',')]
        return recipients

    @field_validator('recipients')
    @classmethod
    def validate_recipients(cls, recipients):
        recipients = [recipient for recipient in recipients if recipient]
        if not recipients:
            raise ValueError("At least one recipient is required")
        return recipients


class NotifyHandler(ActionHandler):
    action_type = "notify"
    description = "Send a notification through the configured sender"
    config_model = NotifyConfig

    def __init__(self, sender: NotificationSender):
        self.sender = sender

    def run(self, config: NotifyConfig, context: ExecutionContext) -> ActionResult:
        message_id = self.sender.send(config.channel, config.recipients, config.subject, config.message)
        return ActionResult(
            success=True,
            output={"message_id": message_id, "recipients": config.recipients, "channel": config.channel},
        )
