"""Bot configuration using pydantic-settings.

This module defines the BotSettings class that reads process-level
configuration from environment variables with the BRANCHBOT_ prefix.
Per-repository behaviour (labels, project, base branch) is not configured
here; it is read from each repository's config file at event time (see
src/branchbot/repo_config/loader.py).
"""

import logging
from enum import Enum

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExistingBranchPolicy(str, Enum):
    """What to do when the branch for an issue already exists.

    Attributes:
        FAIL: Let the ref-creation error propagate. No comment is posted.
        REUSE: Treat the existing branch as created and still post the
               checkout comment.
    """

    FAIL = "fail"
    REUSE = "reuse"


class BotSettings(BaseSettings):
    """Bot configuration from environment variables.

    All environment variables are prefixed with BRANCHBOT_
    (e.g., BRANCHBOT_GITHUB_TOKEN).

    Required fields (must be set via environment variables):
    - github_token: GitHub API token for comments, refs and GraphQL calls
    """

    model_config = SettingsConfigDict(
        env_prefix="BRANCHBOT_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # GitHub API token (PAT or GitHub App installation token)
    github_token: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # Secret for validating webhook signatures; empty disables verification
    github_webhook_secret: str = ""

    # Transport retries for transient GitHub errors (0 = single attempt)
    github_max_retries: int = 0

    # Request timeout in seconds
    github_timeout_seconds: float = 30.0

    # -------------------------------------------------------------------------
    # Bot Identity
    # -------------------------------------------------------------------------
    # Login the bot comments as
    bot_login: str = "chlat-bot[bot]"

    # Account type GitHub reports for the bot's comments
    bot_account_type: str = "Bot"

    # -------------------------------------------------------------------------
    # Repository Config File
    # -------------------------------------------------------------------------
    config_path: str = ".github/config.yml"
    config_branch: str = "develop"

    # -------------------------------------------------------------------------
    # Automation Behaviour
    # -------------------------------------------------------------------------
    existing_branch_policy: ExistingBranchPolicy = ExistingBranchPolicy.FAIL

    # Serialise handling of the same issue within this process
    serialize_per_issue: bool = False

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, v: str) -> str:
        """Validate that GitHub token is not empty."""
        if not v or not v.strip():
            raise ValueError("github_token cannot be empty")
        return v

    @field_validator("github_base_url")
    @classmethod
    def validate_github_base_url(cls, v: str) -> str:
        """Validate that the GitHub base URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v

    @field_validator("github_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate that retries are not negative."""
        if v < 0:
            raise ValueError("github_max_retries cannot be negative")
        return v

    @field_validator("github_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that the timeout is positive."""
        if v <= 0:
            raise ValueError("github_timeout_seconds must be positive")
        return v

    @field_validator("bot_login", "bot_account_type", "config_path", "config_branch")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v.strip()

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is one the logging module knows."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level


def get_settings() -> BotSettings:
    """Create and return BotSettings instance.

    Returns:
        BotSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return BotSettings()
