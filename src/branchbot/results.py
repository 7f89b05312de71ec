"""Outcome types for a single run of the automator.

Every external call the automator makes is a step with an explicit
failure policy. A SWALLOW step logs its error and the run continues; a
PROPAGATE step records the failure and the run raises StepFailedError,
which chains the underlying exception and carries the partial result.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class FailurePolicy(str, Enum):
    """How a step's error is handled.

    Attributes:
        SWALLOW: Log the error and continue with the next step.
        PROPAGATE: Record the error and abort the run.
    """

    SWALLOW = "swallow"
    PROPAGATE = "propagate"


class StepStatus(str, Enum):
    """Outcome of one step.

    Attributes:
        SUCCEEDED: The call completed.
        SKIPPED: The step was not attempted (disabled by config or not
                 applicable to the issue).
        SWALLOWED: The call failed and the error was logged.
        PROPAGATED: The call failed and the error aborted the run.
    """

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    SWALLOWED = "swallowed"
    PROPAGATED = "propagated"


class Step(str, Enum):
    """Steps of the automator, in execution order."""

    LOAD_CONFIG = "load_config"
    CHECK_EXISTING_COMMENT = "check_existing_comment"
    LINK_PROJECT = "link_project"
    RESOLVE_BASE_BRANCH = "resolve_base_branch"
    CREATE_BRANCH = "create_branch"
    COMMENT_ISSUE = "comment_issue"


class StopReason(str, Enum):
    """Why a run ended.

    Attributes:
        COMPLETED: Branch created and comment posted.
        LABEL_NOT_CONFIGURED: The issue has none of the configured labels.
        ALREADY_COMMENTED: The bot already commented on the issue.
        NO_BASE_BRANCH: No base branch configured, or it has no head commit.
        FAILED: A propagate-policy step failed.
    """

    COMPLETED = "completed"
    LABEL_NOT_CONFIGURED = "label_not_configured"
    ALREADY_COMMENTED = "already_commented"
    NO_BASE_BRANCH = "no_base_branch"
    FAILED = "failed"


@dataclass
class StepResult:
    """Result of one step.

    Attributes:
        step: Which step ran.
        status: How it ended.
        policy: The failure policy it ran under.
        detail: Short human-readable note (skip reason, branch name, ...).
        error: String form of the error for failed steps.
    """

    step: Step
    status: StepStatus
    policy: FailurePolicy = FailurePolicy.PROPAGATE
    detail: str = ""
    error: Optional[str] = None


@dataclass
class AutomationResult:
    """Everything one run of the automator did.

    Attributes:
        issue_id: Issue identifier ``owner/repo#number``.
        steps: Step results in execution order.
        stop_reason: Why the run ended, None while still running.
        branch_name: Name of the created (or reused) branch, if any.
    """

    issue_id: str
    steps: List[StepResult] = field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    branch_name: Optional[str] = None

    def record(self, result: StepResult) -> StepResult:
        self.steps.append(result)
        return result

    def step(self, step: Step) -> Optional[StepResult]:
        """The result for a step, or None if it never ran."""
        for result in self.steps:
            if result.step == step:
                return result
        return None

    def status_of(self, step: Step) -> Optional[StepStatus]:
        result = self.step(step)
        return result.status if result is not None else None


class StepFailedError(Exception):
    """Raised when a PROPAGATE step fails.

    The underlying exception is available as ``__cause__``.

    Attributes:
        step: The step that failed.
        result: The run's result up to and including the failed step.
    """

    def __init__(self, step: Step, result: AutomationResult, cause: BaseException):
        self.step = step
        self.result = result
        super().__init__(f"{step.value} failed for {result.issue_id}: {cause}")
