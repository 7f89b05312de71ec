"""Per-repository configuration for the bot.

Repositories configure labels, project and base branch in a YAML file
that is read fresh for every event.
"""

from src.branchbot.repo_config.loader import (
    RepoConfigError,
    RepoConfigLoader,
    merge_config,
    parse_config_document,
)
from src.branchbot.repo_config.models import DEFAULT_LABELS, RepoConfig

__all__ = [
    "DEFAULT_LABELS",
    "RepoConfig",
    "RepoConfigError",
    "RepoConfigLoader",
    "merge_config",
    "parse_config_document",
]
