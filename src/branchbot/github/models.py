"""Data models for GitHub API responses used by the bot.

The models use Pydantic for validation, consistent with the webhook and
repository config models.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class BotIdentity(BaseModel):
    """The account the bot acts as.

    GitHub App comments are authored by ``<app-slug>[bot]`` with user type
    ``Bot``. Both must match for a comment to count as the bot's own, so a
    human account that happens to share the login is never mistaken for it.

    Attributes:
        login: Account login, e.g. ``chlat-bot[bot]``.
        account_type: GitHub user type, ``Bot`` for app accounts.
    """

    model_config = ConfigDict(frozen=True)

    login: str = Field(..., min_length=1)
    account_type: str = Field(default="Bot", min_length=1)

    def authored(self, author: "CommentAuthor") -> bool:
        """Check whether a comment author is this identity."""
        return author.login == self.login and author.account_type == self.account_type


class CommentAuthor(BaseModel):
    """Author of an existing issue comment.

    Attributes:
        login: Author login, None when GitHub reports a ghost user.
        account_type: GitHub user type (``User``, ``Bot``, ``Organization``).
    """

    model_config = ConfigDict(frozen=True)

    login: Optional[str] = None
    account_type: Optional[str] = None

    @classmethod
    def from_github_comment(cls, data: Dict[str, Any]) -> "CommentAuthor":
        """Build from an item of the list-issue-comments response."""
        user = data.get("user") or {}
        return cls(login=user.get("login"), account_type=user.get("type"))
