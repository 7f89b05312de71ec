"""Loading of per-repository configuration files.

The loader reads the bot's YAML config file from a fixed branch of the
repository the event came from, and merges it over the defaults in
RepoConfig. A missing file is not an error: the defaults are returned.

A config file may inherit from another repository's file with an
``_extends`` key, in one of these forms:

    _extends: shared-config                  # same owner, same path
    _extends: other-org/shared-config        # other owner, same path
    _extends: other-org/shared-config:bot.yml

Local keys win over inherited ones, inherited keys win over defaults.
Only one level of inheritance is followed.
"""

import logging
import re
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import ValidationError

from src.branchbot.github.client import GitHubClient
from src.branchbot.repo_config.models import RepoConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = ".github/config.yml"
DEFAULT_CONFIG_BRANCH = "develop"
EXTENDS_KEY = "_extends"

EXTENDS_PATTERN = re.compile(
    r"^(?:(?P<owner>[A-Za-z0-9_.-]+)/)?(?P<repo>[A-Za-z0-9_.-]+)(?::(?P<path>.+))?$"
)


class RepoConfigError(Exception):
    """Raised when a repository config file exists but cannot be used."""


def parse_config_document(content: Optional[str], source: str) -> Dict[str, Any]:
    """Parse a YAML config document into a mapping.

    Args:
        content: File content, or None when the file does not exist.
        source: Description of the file for error messages.

    Returns:
        The top-level mapping. Missing and empty files give ``{}``.

    Raises:
        RepoConfigError: If the YAML is malformed or not a mapping.
    """
    if content is None:
        return {}
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise RepoConfigError(f"Failed to parse YAML in {source}: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise RepoConfigError(
            f"{source} must contain a mapping, got {type(document).__name__}"
        )
    return document


def merge_config(*layers: Dict[str, Any]) -> RepoConfig:
    """Merge config mappings, later layers winning, over the defaults.

    Keys set to null are treated as absent.

    Raises:
        RepoConfigError: If a recognised key has an invalid value.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        merged.update({k: v for k, v in layer.items() if v is not None})
    merged.pop(EXTENDS_KEY, None)

    try:
        return RepoConfig.model_validate(merged)
    except ValidationError as e:
        raise RepoConfigError(f"Invalid repository config: {e}") from e


class RepoConfigLoader:
    """Loads RepoConfig for a repository through the GitHub contents API.

    Attributes:
        github_client: Client used to read files.
        path: Config file path inside the repository.
        branch: Branch the config file is read from.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        path: str = DEFAULT_CONFIG_PATH,
        branch: str = DEFAULT_CONFIG_BRANCH,
    ):
        self.github_client = github_client
        self.path = path
        self.branch = branch

    async def load(self, owner: str, repo: str) -> RepoConfig:
        """Load the merged configuration for a repository.

        Args:
            owner: Repository owner.
            repo: Repository name.

        Returns:
            The merged configuration; defaults when no file exists.

        Raises:
            RepoConfigError: If the file or an inherited file is invalid.
            GitHubAPIError: If reading a file fails for a reason other
                            than the file not existing.
        """
        source = f"{owner}/{repo}:{self.path}@{self.branch}"
        content = await self.github_client.get_file_content(
            owner, repo, self.path, ref=self.branch
        )
        if content is None:
            logger.debug(
                "No repository config, using defaults",
                extra={"source": source},
            )
        local = parse_config_document(content, source)

        base: Dict[str, Any] = {}
        extends = local.get(EXTENDS_KEY)
        if extends is not None:
            base = await self._load_base(owner, extends, source)

        config = merge_config(base, local)
        logger.debug(
            "Loaded repository config",
            extra={
                "source": source,
                "labels": list(config.labels),
                "project_id": config.project_id,
                "base_branch": config.base_branch,
            },
        )
        return config

    async def _load_base(self, owner: str, extends: Any, source: str) -> Dict[str, Any]:
        base_owner, base_repo, base_path = self._parse_extends(owner, extends, source)
        base_source = f"{base_owner}/{base_repo}:{base_path}"

        # Inherited files are read from the base repository's default branch
        content = await self.github_client.get_file_content(
            base_owner, base_repo, base_path
        )
        if content is None:
            logger.warning(
                "Inherited repository config not found",
                extra={"source": source, "extends": base_source},
            )
        base = parse_config_document(content, base_source)
        if EXTENDS_KEY in base:
            logger.debug(
                "Ignoring nested _extends in inherited config",
                extra={"extends": base_source},
            )
        return base

    def _parse_extends(self, owner: str, extends: Any, source: str) -> Tuple[str, str, str]:
        if not isinstance(extends, str):
            raise RepoConfigError(f"{EXTENDS_KEY} in {source} must be a string")
        match = EXTENDS_PATTERN.match(extends.strip())
        if match is None:
            raise RepoConfigError(f"Invalid {EXTENDS_KEY} value in {source}: {extends!r}")
        return (
            match.group("owner") or owner,
            match.group("repo"),
            match.group("path") or self.path,
        )
