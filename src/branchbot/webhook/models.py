"""GitHub webhook event models for the bot.

This module defines the data model for the one event the bot acts on,
``issues`` with action ``labeled``. The handler parses raw payloads into
these models; the automator only ever sees validated events.

The models use Pydantic for validation, consistent with the settings in
config.py.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IssueAction(str, Enum):
    """GitHub issue event action types the bot recognises.

    Attributes:
        LABELED: A label was added to an issue.
    """

    LABELED = "labeled"


class IssueLabeledEvent(BaseModel):
    """Parsed ``issues.labeled`` webhook event.

    Attributes:
        action: Always ``labeled``.
        issue_number: The issue number within the repository.
        title: The issue title text.
        node_id: The issue's GraphQL node identifier.
        labels: Names of all labels on the issue after the change.
        comments: Number of comments GitHub reported at delivery time.
        repository: The repository name (without owner prefix).
        owner: The repository owner (user or organization).
        label: The label that was just added, if present in the payload.
        sender: Login of the account that added the label.
    """

    model_config = ConfigDict(frozen=True)

    action: IssueAction = Field(
        default=IssueAction.LABELED,
        description="The type of issue event that triggered the webhook",
    )

    issue_number: int = Field(
        ...,
        gt=0,
        description="The issue number within the repository (positive integer)",
    )

    title: str = Field(
        ...,
        description="The issue title text",
    )

    node_id: str = Field(
        ...,
        min_length=1,
        description="GraphQL node id of the issue",
    )

    labels: tuple[str, ...] = Field(
        default=(),
        description="Label names attached to the issue",
    )

    comments: int = Field(
        default=0,
        ge=0,
        description="Comment count reported in the payload",
    )

    repository: str = Field(
        ...,
        min_length=1,
        description="The repository name without owner prefix",
    )

    owner: str = Field(
        ...,
        min_length=1,
        description="The repository owner (user or organization)",
    )

    label: Optional[str] = Field(
        default=None,
        description="The label added by this event",
    )

    sender: Optional[str] = Field(
        default=None,
        description="Login of the account that added the label",
    )

    @property
    def issue_id(self) -> str:
        """Canonical issue identifier ``{owner}/{repository}#{issue_number}``."""
        return f"{self.owner}/{self.repository}#{self.issue_number}"
