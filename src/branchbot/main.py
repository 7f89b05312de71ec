"""FastAPI application entry point for branchbot.

This module provides the HTTP surface of the bot: the GitHub webhook
receiver, a liveness probe and the Prometheus metrics endpoint. The
webhook receiver verifies the delivery signature, parses
``issues.labeled`` events and hands them to the LabelAutomator in a
background task so GitHub gets its acknowledgement straight away.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional, Set

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response

from .automator import LabelAutomator
from .config import BotSettings, get_settings
from .github.client import GitHubClient
from .github.models import BotIdentity
from .locks import IssueLockRegistry
from .metrics import generate_metrics_output, get_metrics
from .repo_config.loader import RepoConfigLoader
from .results import StepFailedError
from .webhook.handler import EVENT_HEADER, SIGNATURE_HEADER, WebhookHandler
from .webhook.models import IssueLabeledEvent

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: BotSettings
automator: Optional[LabelAutomator] = None
webhook_handler: Optional[WebhookHandler] = None
github_client: Optional[GitHubClient] = None

# Keeps background tasks referenced until they finish
_background_tasks: Set["asyncio.Task[None]"] = set()


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: BotSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Bot configuration:")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.info(
        f"  GitHub Webhook Secret: {_redact_secret(settings.github_webhook_secret) or '(not set)'}"
    )
    logger.info(f"  GitHub Max Retries: {settings.github_max_retries}")
    logger.info(f"  Bot Identity: {settings.bot_login} ({settings.bot_account_type})")
    logger.info(f"  Config File: {settings.config_path}@{settings.config_branch}")
    logger.info(f"  Existing Branch Policy: {settings.existing_branch_policy.value}")
    logger.info(f"  Serialize Per Issue: {settings.serialize_per_issue}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def build_automator(cfg: BotSettings, gh_client: GitHubClient) -> LabelAutomator:
    """Wire the automator's dependencies from settings.

    Args:
        cfg: Validated bot settings.
        gh_client: Authenticated GitHub API client.

    Returns:
        Fully wired LabelAutomator.
    """
    return LabelAutomator(
        github_client=gh_client,
        config_loader=RepoConfigLoader(
            github_client=gh_client,
            path=cfg.config_path,
            branch=cfg.config_branch,
        ),
        bot_identity=BotIdentity(
            login=cfg.bot_login,
            account_type=cfg.bot_account_type,
        ),
        existing_branch_policy=cfg.existing_branch_policy,
        lock_registry=IssueLockRegistry() if cfg.serialize_per_issue else None,
        metrics=get_metrics(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load settings, wire dependencies, and close the client on shutdown."""
    global settings, automator, webhook_handler, github_client

    logger.info("branchbot starting up...")

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)
    _log_configuration(settings)

    webhook_handler = WebhookHandler(secret=settings.github_webhook_secret)
    github_client = GitHubClient(
        token=settings.github_token,
        base_url=settings.github_base_url,
        max_retries=settings.github_max_retries,
        timeout=settings.github_timeout_seconds,
    )
    automator = build_automator(settings, github_client)

    logger.info("branchbot started successfully")

    yield

    logger.info("branchbot shutting down...")

    if _background_tasks:
        await asyncio.gather(*_background_tasks, return_exceptions=True)

    if github_client is not None:
        await github_client.close()

    logger.info("branchbot shutdown complete")


async def process_event(bot: LabelAutomator, event: IssueLabeledEvent) -> None:
    """Run the automator for one event, logging anything that escapes it."""
    try:
        await bot.handle(event)
    except StepFailedError as e:
        logger.error(
            "Automation aborted",
            exc_info=e.__cause__,
            extra={"issue_id": event.issue_id, "step": e.step.value},
        )
    except Exception:
        logger.exception(
            "Unexpected error handling event",
            extra={"issue_id": event.issue_id},
        )


app = FastAPI(
    title="branchbot",
    description="Creates a branch and checkout comment when issues are labeled",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_metrics_output(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


@app.post("/webhooks/github")
async def github_webhook(request: Request):
    """GitHub webhook receiver endpoint.

    Returns:
        dict: Acknowledgment of webhook receipt.

    Raises:
        HTTPException: 401 for a bad signature, 400 for a body that is
                       not JSON, 503 before startup has completed.
    """
    if webhook_handler is None or automator is None:
        logger.error("Bot not initialized")
        raise HTTPException(status_code=503, detail="Bot not initialized")

    body = await request.body()
    if not webhook_handler.verify_signature(body, request.headers.get(SIGNATURE_HEADER)):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Body is not valid JSON")

    event_name = request.headers.get(EVENT_HEADER, "")
    event = webhook_handler.parse_labeled_event(payload, event_name=event_name)
    if event is None:
        return {"status": "ignored", "message": "Unsupported or invalid event"}

    task = asyncio.create_task(process_event(automator, event))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return {"status": "accepted", "issue_id": event.issue_id}


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.branchbot.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
