"""Per-repository configuration model.

Each repository controls the bot through a YAML file (by default
``.github/config.yml`` on the ``develop`` branch) with three recognised
keys. Keys that are absent, or set to null, fall back to the defaults
below, so every field always resolves to a defined value.
"""

from typing import Any, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_LABELS: Tuple[str, ...] = ("bug", "enhancement")


class RepoConfig(BaseModel):
    """Repository configuration for one event.

    Attributes:
        labels: Labels that trigger the bot (``LABELS``).
        project_id: GraphQL id of the project to link issues to
                    (``PROJECT_ID``). Empty disables project linkage.
        base_branch: Branch new issue branches start from
                     (``BASE_BRANCH``). Empty disables branch creation
                     and the checkout comment.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
    )

    labels: Tuple[str, ...] = Field(default=DEFAULT_LABELS, alias="LABELS")
    project_id: str = Field(default="", alias="PROJECT_ID")
    base_branch: str = Field(default="", alias="BASE_BRANCH")

    @field_validator("labels", mode="before")
    @classmethod
    def coerce_labels(cls, v: Any) -> Any:
        """Accept a single label name as well as a list of names."""
        if isinstance(v, str):
            return (v,)
        if isinstance(v, (list, tuple)):
            for item in v:
                if not isinstance(item, str):
                    raise ValueError(f"LABELS entries must be strings, got {item!r}")
            return tuple(v)
        raise ValueError(f"LABELS must be a list of strings, got {type(v).__name__}")

    @field_validator("project_id", "base_branch", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        # YAML turns unquoted numeric ids into ints
        if isinstance(v, bool):
            raise ValueError("expected a string, got a boolean")
        if isinstance(v, (int, float)):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v

    @property
    def project_linkage_enabled(self) -> bool:
        return bool(self.project_id)

    @property
    def branch_creation_enabled(self) -> bool:
        return bool(self.base_branch)
