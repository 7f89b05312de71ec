"""GitHub webhook handling for the bot.

This module verifies and parses GitHub webhook deliveries. Only
``issues.labeled`` events are turned into IssueLabeledEvent objects.
"""

from .handler import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    WebhookHandler,
    create_webhook_handler,
)
from .models import IssueAction, IssueLabeledEvent

__all__ = [
    "EVENT_HEADER",
    "IssueAction",
    "IssueLabeledEvent",
    "SIGNATURE_HEADER",
    "WebhookHandler",
    "create_webhook_handler",
]
