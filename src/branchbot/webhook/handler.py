"""GitHub webhook handler for the bot.

This module provides the WebhookHandler class for verifying and parsing
GitHub webhook deliveries. Only ``issues`` events with action ``labeled``
produce an event; everything else is ignored.

GitHub Webhook Payload Structure (issues.labeled):
{
  "action": "labeled",
  "label": {"name": "bug"},
  "issue": {
    "number": 7,
    "title": "Add dark mode",
    "node_id": "I_kwDOAbc123",
    "comments": 0,
    "labels": [{"name": "bug"}]
  },
  "repository": {
    "name": "repo-name",
    "owner": {"login": "owner-name"}
  },
  "sender": {"login": "username"}
}
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .models import IssueAction, IssueLabeledEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"
SIGNATURE_PREFIX = "sha256="


class WebhookHandler:
    """Handler for verifying and parsing GitHub webhook deliveries.

    Attributes:
        secret: The webhook secret. When empty, signatures are not checked.
    """

    def __init__(self, secret: str = "") -> None:
        self.secret = secret

    @property
    def verifies_signatures(self) -> bool:
        return bool(self.secret)

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """Check an ``X-Hub-Signature-256`` header against the raw body.

        Args:
            body: The raw request body, exactly as received.
            signature: Header value in the form ``sha256=<hexdigest>``.

        Returns:
            True if no secret is configured or the signature matches.
        """
        if not self.verifies_signatures:
            return True

        if not signature or not signature.startswith(SIGNATURE_PREFIX):
            logger.warning("Missing or malformed webhook signature")
            return False

        expected = hmac.new(
            self.secret.encode("utf-8"), body, hashlib.sha256
        ).hexdigest()
        received = signature[len(SIGNATURE_PREFIX):]

        if not hmac.compare_digest(expected, received):
            logger.warning("Webhook signature mismatch")
            return False
        return True

    def parse_labeled_event(
        self,
        payload: Any,
        event_name: str = "issues",
    ) -> Optional[IssueLabeledEvent]:
        """Parse an ``issues.labeled`` event from a webhook payload.

        Args:
            payload: The decoded webhook payload.
            event_name: Value of the ``X-GitHub-Event`` header.

        Returns:
            IssueLabeledEvent if parsing succeeds, None for other events,
            other actions, or malformed payloads.
        """
        if event_name != "issues":
            logger.debug("Ignoring event type: %s", event_name)
            return None

        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        action = payload.get("action")
        if action != IssueAction.LABELED.value:
            logger.debug("Ignoring unsupported action type: %s", action)
            return None

        issue_data = payload.get("issue")
        if not isinstance(issue_data, dict):
            logger.warning(
                "Missing or invalid 'issue' field in payload: %s",
                type(issue_data),
            )
            return None

        repo_data = payload.get("repository")
        if not isinstance(repo_data, dict):
            logger.warning(
                "Missing or invalid 'repository' field in payload: %s",
                type(repo_data),
            )
            return None

        owner = self._extract_login(repo_data.get("owner"))
        if owner is None:
            logger.warning("Missing repository owner login in payload")
            return None

        title = issue_data.get("title")
        if not isinstance(title, str):
            logger.warning("Invalid issue title: %s", title)
            return None

        label_data = payload.get("label")
        added_label = label_data.get("name") if isinstance(label_data, dict) else None

        comments = issue_data.get("comments", 0)
        if not isinstance(comments, int) or isinstance(comments, bool):
            comments = 0

        try:
            event = IssueLabeledEvent(
                issue_number=issue_data.get("number"),
                title=title,
                node_id=issue_data.get("node_id"),
                labels=tuple(self._extract_labels(issue_data.get("labels", []))),
                comments=comments,
                repository=repo_data.get("name"),
                owner=owner,
                label=added_label if isinstance(added_label, str) else None,
                sender=self._extract_login(payload.get("sender")),
            )
        except ValidationError as e:
            logger.warning(
                "Invalid issues.labeled payload: %s",
                e.errors(include_url=False),
            )
            return None

        logger.info(
            "Parsed issue event: action=%s, issue=%s",
            event.action.value,
            event.issue_id,
        )
        return event

    def _extract_labels(self, labels_data: Any) -> List[str]:
        """Extract label names from the labels array.

        GitHub sends labels as objects with a 'name' field. Invalid
        entries are skipped.
        """
        if not isinstance(labels_data, list):
            logger.debug("Labels is not a list: %s", type(labels_data))
            return []

        labels = []
        for label in labels_data:
            if isinstance(label, dict):
                name = label.get("name")
                if isinstance(name, str) and name:
                    labels.append(name)
            elif isinstance(label, str) and label:
                labels.append(label)
        return labels

    def _extract_login(self, user_data: Any) -> Optional[str]:
        if not isinstance(user_data, dict):
            return None
        login = user_data.get("login")
        if not isinstance(login, str) or not login.strip():
            return None
        return login.strip()


def create_webhook_handler(secret: str = "") -> WebhookHandler:
    """Factory function to create a WebhookHandler instance."""
    return WebhookHandler(secret=secret)
