"""GitHub API client and response models for the bot.

This module provides a wrapper around the GitHub API for:
- Listing and creating issue comments
- Reading branch heads and creating refs
- Reading repository files
- GraphQL mutations
"""

from src.branchbot.github.client import (
    GitHubAPIError,
    GitHubClient,
    GraphQLError,
    RateLimitError,
)
from src.branchbot.github.models import BotIdentity, CommentAuthor

__all__ = [
    "BotIdentity",
    "CommentAuthor",
    "GitHubAPIError",
    "GitHubClient",
    "GraphQLError",
    "RateLimitError",
]
