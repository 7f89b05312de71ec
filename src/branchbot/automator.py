"""Label-triggered issue automator.

Handles one ``issues.labeled`` event end to end:

1. Load the repository config (defaults when the file is absent).
2. Stop if the issue carries none of the configured labels.
3. Stop if the bot already commented on the issue.
4. Link the issue to the configured project (errors are logged only).
5. Resolve the base branch head; stop if there is none.
6. Create the issue branch from that head.
7. Comment on the issue with checkout instructions.

Steps run strictly in order. Each external call has an explicit failure
policy (see src/branchbot/results.py); everything except project linkage
aborts the run on error. Nothing is rolled back: a branch created before
a failed comment stays in place.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Iterable, NamedTuple, Optional, TypeVar

from src.branchbot.branching import branch_ref, build_branch_name, build_checkout_comment
from src.branchbot.config import ExistingBranchPolicy
from src.branchbot.github.client import GitHubAPIError, GitHubClient
from src.branchbot.github.models import BotIdentity, CommentAuthor
from src.branchbot.locks import IssueLockRegistry
from src.branchbot.metrics import AutomationMetrics
from src.branchbot.repo_config.loader import RepoConfigLoader
from src.branchbot.repo_config.models import RepoConfig
from src.branchbot.results import (
    AutomationResult,
    FailurePolicy,
    Step,
    StepFailedError,
    StepResult,
    StepStatus,
    StopReason,
)
from src.branchbot.webhook.models import IssueLabeledEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

ADD_ISSUE_TO_PROJECT = """
  mutation addIssueToProject($id: ID!, $projectId: ID!) {
    updateIssue(input: {id: $id, projectIds: [$projectId]}) {
      issue {
        title
      }
    }
  }
"""

REF_EXISTS_MESSAGE = "Reference already exists"


def is_issue_not_in_labels(issue_labels: Iterable[str], labels: Iterable[str]) -> bool:
    """Return True when none of the issue's labels is a configured label."""
    configured = set(labels)
    return not any(label in configured for label in issue_labels)


def is_ref_exists_error(error: GitHubAPIError) -> bool:
    """Whether a create-ref failure means the ref is already there."""
    return error.status_code == 422 and REF_EXISTS_MESSAGE in (error.response_body or "")


class BranchCreation(NamedTuple):
    name: str
    reused: bool


class LabelAutomator:
    """Runs the label-triggered automation for one event at a time.

    Attributes:
        github_client: GitHub API client.
        config_loader: Loads per-repository config.
        bot_identity: Account whose comments mark an issue as handled.
        existing_branch_policy: What to do when the branch already exists.
        lock_registry: Optional per-issue lock registry. When set, runs for
                       the same issue are serialised.
        metrics: Optional Prometheus metrics recorder.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        config_loader: RepoConfigLoader,
        bot_identity: BotIdentity,
        existing_branch_policy: ExistingBranchPolicy = ExistingBranchPolicy.FAIL,
        lock_registry: Optional[IssueLockRegistry] = None,
        metrics: Optional[AutomationMetrics] = None,
    ):
        self.github_client = github_client
        self.config_loader = config_loader
        self.bot_identity = bot_identity
        self.existing_branch_policy = existing_branch_policy
        self.lock_registry = lock_registry
        self.metrics = metrics

    async def handle(self, event: IssueLabeledEvent) -> AutomationResult:
        """Handle an ``issues.labeled`` event.

        Args:
            event: Parsed webhook event.

        Returns:
            The run's result, with ``stop_reason`` set.

        Raises:
            StepFailedError: If a step with the PROPAGATE policy fails.
        """
        if self.lock_registry is None:
            return await self._handle(event)

        async with self.lock_registry.hold(event.issue_id):
            return await self._handle(event)

    async def _handle(self, event: IssueLabeledEvent) -> AutomationResult:
        result = AutomationResult(issue_id=event.issue_id)
        started = time.monotonic()
        try:
            await self._run(event, result)
        finally:
            if self.metrics is not None:
                self.metrics.record_result(result, time.monotonic() - started)

        logger.info(
            "Finished handling labeled issue",
            extra={
                "issue_id": event.issue_id,
                "stop_reason": result.stop_reason.value if result.stop_reason else None,
                "branch": result.branch_name,
            },
        )
        return result

    async def _run(self, event: IssueLabeledEvent, result: AutomationResult) -> None:
        config = await self._run_step(
            result,
            Step.LOAD_CONFIG,
            FailurePolicy.PROPAGATE,
            self.load_config(event),
        )

        if is_issue_not_in_labels(event.labels, config.labels):
            logger.debug(
                "Issue has no configured label",
                extra={"issue_id": event.issue_id, "labels": list(event.labels)},
            )
            result.stop_reason = StopReason.LABEL_NOT_CONFIGURED
            return

        already_commented = await self._run_step(
            result,
            Step.CHECK_EXISTING_COMMENT,
            FailurePolicy.PROPAGATE,
            self.has_bot_commented(event),
            describe=lambda found: "bot comment found" if found else "",
        )
        if already_commented:
            logger.info(
                "Bot already commented on this issue",
                extra={"issue_id": event.issue_id},
            )
            result.stop_reason = StopReason.ALREADY_COMMENTED
            return

        await self._link_project(event, config, result)

        base_sha = await self._resolve_base_branch(event, config, result)
        if not base_sha:
            result.stop_reason = StopReason.NO_BASE_BRANCH
            return

        creation = await self._run_step(
            result,
            Step.CREATE_BRANCH,
            FailurePolicy.PROPAGATE,
            self._create_branch_with_policy(event, base_sha),
            describe=lambda c: f"{c.name} (already existed)" if c.reused else c.name,
        )
        result.branch_name = creation.name

        await self._run_step(
            result,
            Step.COMMENT_ISSUE,
            FailurePolicy.PROPAGATE,
            self.comment_issue(event, creation.name),
        )
        result.stop_reason = StopReason.COMPLETED

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def load_config(self, event: IssueLabeledEvent) -> RepoConfig:
        """Load the repository config for the event's repository."""
        return await self.config_loader.load(event.owner, event.repository)

    async def has_bot_commented(self, event: IssueLabeledEvent) -> bool:
        """Check every page of the issue's comments for one by the bot."""
        pages = 0
        scanned = 0
        async for page in self.github_client.iter_issue_comment_pages(
            event.owner, event.repository, event.issue_number
        ):
            pages += 1
            scanned += len(page)
            for comment in page:
                if self.bot_identity.authored(CommentAuthor.from_github_comment(comment)):
                    return True

        logger.debug(
            "No bot comment on issue",
            extra={
                "issue_id": event.issue_id,
                "pages": pages,
                "comments_scanned": scanned,
                "comments_in_payload": event.comments,
            },
        )
        return False

    async def add_issue_to_project(self, event: IssueLabeledEvent, project_id: str) -> None:
        """Run the project linkage mutation for the issue."""
        await self.github_client.graphql(
            ADD_ISSUE_TO_PROJECT,
            {"id": event.node_id, "projectId": project_id},
        )
        logger.info(
            "Issue added to project",
            extra={"issue_id": event.issue_id, "project_id": project_id},
        )

    async def get_branch_sha(self, event: IssueLabeledEvent, branch: str) -> Optional[str]:
        """Head commit sha of ``branch`` in the event's repository."""
        return await self.github_client.get_branch_sha(
            event.owner, event.repository, branch
        )

    async def create_branch(self, event: IssueLabeledEvent, sha: str) -> str:
        """Create the issue branch at ``sha`` and return its name."""
        branch_name = build_branch_name(event.issue_number, event.title)
        await self.github_client.create_ref(
            event.owner, event.repository, branch_ref(branch_name), sha
        )
        logger.info(
            "Branch created",
            extra={"issue_id": event.issue_id, "branch": branch_name, "sha": sha},
        )
        return branch_name

    async def comment_issue(self, event: IssueLabeledEvent, branch_name: str) -> None:
        """Post the checkout instructions for ``branch_name`` on the issue."""
        await self.github_client.create_comment(
            event.owner,
            event.repository,
            event.issue_number,
            build_checkout_comment(branch_name),
        )

    # ------------------------------------------------------------------
    # Steps with skip conditions
    # ------------------------------------------------------------------

    async def _link_project(
        self,
        event: IssueLabeledEvent,
        config: RepoConfig,
        result: AutomationResult,
    ) -> None:
        if not config.project_linkage_enabled:
            logger.warning(
                "No PROJECT_ID set in %s",
                self.config_loader.path,
                extra={"issue_id": event.issue_id},
            )
            result.record(
                StepResult(
                    step=Step.LINK_PROJECT,
                    status=StepStatus.SKIPPED,
                    policy=FailurePolicy.SWALLOW,
                    detail="no project configured",
                )
            )
            return

        if is_issue_not_in_labels(event.labels, config.labels):
            result.record(
                StepResult(
                    step=Step.LINK_PROJECT,
                    status=StepStatus.SKIPPED,
                    policy=FailurePolicy.SWALLOW,
                    detail="no qualifying label",
                )
            )
            return

        await self._run_step(
            result,
            Step.LINK_PROJECT,
            FailurePolicy.SWALLOW,
            self.add_issue_to_project(event, config.project_id),
            describe=lambda _: config.project_id,
        )

    async def _resolve_base_branch(
        self,
        event: IssueLabeledEvent,
        config: RepoConfig,
        result: AutomationResult,
    ) -> Optional[str]:
        if not config.branch_creation_enabled:
            logger.warning(
                "No BASE_BRANCH set in %s",
                self.config_loader.path,
                extra={"issue_id": event.issue_id},
            )
            result.record(
                StepResult(
                    step=Step.RESOLVE_BASE_BRANCH,
                    status=StepStatus.SKIPPED,
                    detail="no base branch configured",
                )
            )
            return None

        sha = await self._run_step(
            result,
            Step.RESOLVE_BASE_BRANCH,
            FailurePolicy.PROPAGATE,
            self.get_branch_sha(event, config.base_branch),
            describe=lambda s: f"{config.base_branch}@{s}" if s else "no head commit",
        )
        if not sha:
            logger.warning(
                "Base branch has no head commit",
                extra={"issue_id": event.issue_id, "base_branch": config.base_branch},
            )
        return sha

    async def _create_branch_with_policy(
        self,
        event: IssueLabeledEvent,
        sha: str,
    ) -> BranchCreation:
        try:
            return BranchCreation(await self.create_branch(event, sha), reused=False)
        except GitHubAPIError as e:
            if (
                self.existing_branch_policy is not ExistingBranchPolicy.REUSE
                or not is_ref_exists_error(e)
            ):
                raise

        branch_name = build_branch_name(event.issue_number, event.title)
        logger.warning(
            "Branch already exists, reusing it",
            extra={"issue_id": event.issue_id, "branch": branch_name},
        )
        return BranchCreation(branch_name, reused=True)

    async def _run_step(
        self,
        result: AutomationResult,
        step: Step,
        policy: FailurePolicy,
        call: Awaitable[T],
        describe: Optional[Callable[[Any], str]] = None,
    ) -> Optional[T]:
        """Await one step's call and record its outcome.

        Returns:
            The call's value, or None when a SWALLOW step failed.

        Raises:
            StepFailedError: If a PROPAGATE step failed.
        """
        try:
            value = await call
        except Exception as exc:
            if policy is FailurePolicy.SWALLOW:
                logger.error(
                    "Step failed, continuing",
                    exc_info=True,
                    extra={"issue_id": result.issue_id, "step": step.value},
                )
                result.record(
                    StepResult(
                        step=step,
                        status=StepStatus.SWALLOWED,
                        policy=policy,
                        error=str(exc),
                    )
                )
                return None

            logger.error(
                "Step failed, aborting",
                extra={"issue_id": result.issue_id, "step": step.value, "error": str(exc)},
            )
            result.record(
                StepResult(
                    step=step,
                    status=StepStatus.PROPAGATED,
                    policy=policy,
                    error=str(exc),
                )
            )
            result.stop_reason = StopReason.FAILED
            raise StepFailedError(step, result, exc) from exc

        result.record(
            StepResult(
                step=step,
                status=StepStatus.SUCCEEDED,
                policy=policy,
                detail=describe(value) if describe is not None else "",
            )
        )
        return value
