"""Shared fixtures for branchbot tests.

GitHubStub is an in-memory stand-in for the GitHub API served through
httpx.MockTransport, so tests exercise the real GitHubClient request
building and response parsing. It records every write the bot makes.
"""

import asyncio
import base64
import json
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from src.branchbot.github.client import GitHubClient
from src.branchbot.webhook.models import IssueLabeledEvent


CONTENTS_PATH = re.compile(r"^/repos/([^/]+)/([^/]+)/contents/(.+)$")
COMMENTS_PATH = re.compile(r"^/repos/([^/]+)/([^/]+)/issues/(\d+)/comments$")
BRANCH_PATH = re.compile(r"^/repos/([^/]+)/([^/]+)/branches/(.+)$")
REFS_PATH = re.compile(r"^/repos/([^/]+)/([^/]+)/git/refs$")


def make_comment(login: Optional[str], user_type: Optional[str] = "User", body: str = "hi") -> Dict[str, Any]:
    user = None if login is None else {"login": login, "type": user_type}
    return {"id": 1, "body": body, "user": user}


class GitHubStub:
    """In-memory GitHub API.

    Attributes:
        files: (owner, repo, path, ref) -> file content.
        comments: Existing comments on every issue.
        branches: Branch name -> head sha.
        existing_refs: Refs that already exist (create answers 422).
        requests: Every request received, in order.
        created_refs: JSON bodies of create-ref calls that succeeded.
        posted_comments: JSON bodies of create-comment calls.
        graphql_calls: JSON bodies of GraphQL calls.
        failures: (method, path prefix) -> (status, body) forced responses.
    """

    def __init__(self) -> None:
        self.files: Dict[Tuple[str, str, str, Optional[str]], str] = {}
        self.comments: List[Dict[str, Any]] = []
        self.branches: Dict[str, Optional[str]] = {}
        self.existing_refs: set = set()
        self.requests: List[httpx.Request] = []
        self.created_refs: List[Dict[str, Any]] = []
        self.posted_comments: List[Dict[str, Any]] = []
        self.graphql_calls: List[Dict[str, Any]] = []
        self.graphql_errors: Optional[List[Dict[str, Any]]] = None
        self.failures: Dict[Tuple[str, str], Tuple[int, Dict[str, Any]]] = {}
        self.bot_login = "chlat-bot[bot]"

    # -- setup helpers -------------------------------------------------

    def add_file(self, owner: str, repo: str, path: str, content: str, ref: Optional[str] = None) -> None:
        self.files[(owner, repo, path, ref)] = content

    def add_config(self, content: str, owner: str = "acme", repo: str = "widgets") -> None:
        self.add_file(owner, repo, ".github/config.yml", content, ref="develop")

    def add_comments(self, count: int, login: Optional[str] = "someone", user_type: Optional[str] = "User") -> None:
        self.comments.extend(make_comment(login, user_type) for _ in range(count))

    def fail(self, method: str, path_prefix: str, status: int, body: Optional[Dict[str, Any]] = None) -> None:
        self.failures[(method, path_prefix)] = (status, body or {"message": "boom"})

    def client(self, **kwargs: Any) -> GitHubClient:
        return GitHubClient(
            token="test-token",
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )

    # -- recorded traffic ------------------------------------------------

    @property
    def writes(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method != "GET"]

    def requests_to(self, method: str, pattern: "re.Pattern[str]") -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and pattern.match(r.url.path)
        ]

    def comment_listings(self) -> List[httpx.Request]:
        return self.requests_to("GET", COMMENTS_PATH)

    # -- routing ---------------------------------------------------------

    async def handler(self, request: httpx.Request) -> httpx.Response:
        # Yield like a real network call so concurrent runs interleave
        await asyncio.sleep(0)
        return self.route(request)

    def route(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        for (method, prefix), (status, body) in self.failures.items():
            if request.method == method and path.startswith(prefix):
                return httpx.Response(status, json=body)

        if request.method == "POST" and path.endswith("/graphql"):
            payload = json.loads(request.content)
            self.graphql_calls.append(payload)
            if self.graphql_errors:
                return httpx.Response(200, json={"errors": self.graphql_errors})
            return httpx.Response(
                200, json={"data": {"updateIssue": {"issue": {"title": "t"}}}}
            )

        match = CONTENTS_PATH.match(path)
        if match and request.method == "GET":
            owner, repo, file_path = match.groups()
            ref = request.url.params.get("ref")
            content = self.files.get((owner, repo, file_path, ref))
            if content is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(
                200,
                json={
                    "type": "file",
                    "encoding": "base64",
                    "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
                },
            )

        match = COMMENTS_PATH.match(path)
        if match and request.method == "GET":
            page = int(request.url.params.get("page", "1"))
            per_page = int(request.url.params.get("per_page", "30"))
            start = (page - 1) * per_page
            return httpx.Response(200, json=self.comments[start:start + per_page])
        if match and request.method == "POST":
            payload = json.loads(request.content)
            self.posted_comments.append(payload)
            self.comments.append(make_comment(self.bot_login, "Bot", payload["body"]))
            return httpx.Response(201, json={"id": 1000 + len(self.posted_comments), **payload})

        match = BRANCH_PATH.match(path)
        if match and request.method == "GET":
            branch = match.group(3)
            if branch not in self.branches:
                return httpx.Response(404, json={"message": "Branch not found"})
            return httpx.Response(
                200, json={"name": branch, "commit": {"sha": self.branches[branch]}}
            )

        match = REFS_PATH.match(path)
        if match and request.method == "POST":
            payload = json.loads(request.content)
            if payload["ref"] in self.existing_refs:
                return httpx.Response(422, json={"message": "Reference already exists"})
            self.existing_refs.add(payload["ref"])
            self.created_refs.append(payload)
            return httpx.Response(
                201, json={"ref": payload["ref"], "object": {"sha": payload["sha"]}}
            )

        return httpx.Response(404, json={"message": f"No route for {request.method} {path}"})


@pytest.fixture
def github_stub() -> GitHubStub:
    return GitHubStub()


@pytest.fixture
def make_event():
    """Factory for IssueLabeledEvent with sensible defaults."""

    def _make_event(
        issue_number: int = 7,
        title: str = "Add dark mode",
        labels: Tuple[str, ...] = ("enhancement",),
        node_id: str = "I_kwDOAbc7",
        comments: int = 0,
        owner: str = "acme",
        repo: str = "widgets",
    ) -> IssueLabeledEvent:
        return IssueLabeledEvent(
            issue_number=issue_number,
            title=title,
            node_id=node_id,
            labels=labels,
            comments=comments,
            repository=repo,
            owner=owner,
            label=labels[0] if labels else None,
            sender="dev1",
        )

    return _make_event


@pytest.fixture
def stub_factory():
    """The GitHubStub class, for tests that need a fresh stub per example."""
    return GitHubStub
