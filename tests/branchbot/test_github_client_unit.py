"""Unit tests for GitHubClient request building and error handling.

Uses httpx.MockTransport so no network access is needed.
"""

import asyncio
import base64
import json

import httpx
import pytest

from src.branchbot.github import (
    GitHubAPIError,
    GitHubClient,
    GraphQLError,
    RateLimitError,
)


def run_async(coro):
    return asyncio.run(coro)


def _client(handler, **kwargs) -> GitHubClient:
    kwargs.setdefault("base_delay", 0.0)
    return GitHubClient(token="test-token", transport=httpx.MockTransport(handler), **kwargs)


class Recorder:
    """Answers with queued responses and records requests."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


class TestRequestBasics:

    def test_auth_and_accept_headers(self):
        recorder = Recorder(httpx.Response(201, json={"id": 1}))

        run_async(_client(recorder).create_comment("acme", "widgets", 7, "hello"))

        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert request.url.path == "/repos/acme/widgets/issues/7/comments"
        assert json.loads(request.content) == {"body": "hello"}

    def test_error_carries_status_and_body(self):
        recorder = Recorder(httpx.Response(422, json={"message": "Reference already exists"}))

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(_client(recorder).create_ref("acme", "widgets", "refs/heads/x", "abc"))

        assert exc_info.value.status_code == 422
        assert "Reference already exists" in exc_info.value.response_body

    def test_no_retry_by_default(self):
        recorder = Recorder(httpx.Response(502), httpx.Response(201, json={}))

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(_client(recorder).create_comment("acme", "widgets", 7, "hi"))

        assert exc_info.value.status_code == 502
        assert len(recorder.requests) == 1

    def test_retries_when_configured(self):
        recorder = Recorder(httpx.Response(502), httpx.Response(201, json={"id": 5}))

        result = run_async(
            _client(recorder, max_retries=2).create_comment("acme", "widgets", 7, "hi")
        )

        assert result["id"] == 5
        assert len(recorder.requests) == 2

    def test_transport_error_without_retries(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(GitHubAPIError, match="refused"):
            run_async(_client(handler).get_branch_sha("acme", "widgets", "main"))

    def test_rate_limit(self):
        recorder = Recorder(
            httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "0"},
                json={"message": "API rate limit exceeded"},
            )
        )

        with pytest.raises(RateLimitError):
            run_async(_client(recorder).get_branch_sha("acme", "widgets", "main"))


class TestCommentPagination:

    @staticmethod
    def _pages(total: int, per_page: int):
        comments = [{"id": i, "user": {"login": "u", "type": "User"}} for i in range(total)]

        def handler(request):
            page = int(request.url.params["page"])
            start = (page - 1) * per_page
            return httpx.Response(200, json=comments[start:start + per_page])

        return handler

    def _collect(self, client, per_page):
        async def collect():
            pages = []
            async for page in client.iter_issue_comment_pages(
                "acme", "widgets", 7, per_page=per_page
            ):
                pages.append(page)
            return pages

        return run_async(collect())

    @pytest.mark.parametrize(
        "total, expected_sizes",
        [
            (0, []),
            (1, [1]),
            (10, [10]),
            (25, [10, 10, 5]),
            (30, [10, 10, 10]),
        ],
    )
    def test_page_sizes(self, total, expected_sizes):
        client = _client(self._pages(total, per_page=10))

        pages = self._collect(client, per_page=10)

        assert [len(p) for p in pages] == expected_sizes
        assert [c["id"] for p in pages for c in p] == list(range(total))

    def test_default_page_size_is_100(self):
        recorder = Recorder(httpx.Response(200, json=[]))

        run_async(_client(recorder).list_issue_comments("acme", "widgets", 7))

        params = recorder.requests[0].url.params
        assert params["per_page"] == "100"
        assert params["page"] == "1"


class TestBranchesAndContents:

    def test_branch_sha(self):
        recorder = Recorder(httpx.Response(200, json={"name": "develop", "commit": {"sha": "abc123"}}))

        sha = run_async(_client(recorder).get_branch_sha("acme", "widgets", "develop"))

        assert sha == "abc123"
        assert recorder.requests[0].url.path == "/repos/acme/widgets/branches/develop"

    def test_branch_without_commit(self):
        recorder = Recorder(httpx.Response(200, json={"name": "develop"}))

        assert run_async(_client(recorder).get_branch_sha("acme", "widgets", "develop")) is None

    def test_unknown_branch_raises(self):
        recorder = Recorder(httpx.Response(404, json={"message": "Branch not found"}))

        with pytest.raises(GitHubAPIError) as exc_info:
            run_async(_client(recorder).get_branch_sha("acme", "widgets", "nope"))

        assert exc_info.value.status_code == 404

    def test_file_content_decoded(self):
        encoded = base64.b64encode(b"BASE_BRANCH: main\n").decode("ascii")
        recorder = Recorder(
            httpx.Response(200, json={"type": "file", "encoding": "base64", "content": encoded})
        )

        content = run_async(
            _client(recorder).get_file_content("acme", "widgets", ".github/config.yml", ref="develop")
        )

        assert content == "BASE_BRANCH: main\n"
        request = recorder.requests[0]
        assert request.url.path == "/repos/acme/widgets/contents/.github/config.yml"
        assert request.url.params["ref"] == "develop"

    def test_missing_file_is_none(self):
        recorder = Recorder(httpx.Response(404, json={"message": "Not Found"}))

        assert run_async(_client(recorder).get_file_content("acme", "widgets", "x.yml")) is None

    def test_directory_is_an_error(self):
        recorder = Recorder(httpx.Response(200, json=[{"type": "file", "name": "a"}]))

        with pytest.raises(GitHubAPIError, match="is not a file"):
            run_async(_client(recorder).get_file_content("acme", "widgets", ".github"))


class TestGraphQL:

    def test_data_returned(self):
        recorder = Recorder(httpx.Response(200, json={"data": {"ok": True}}))

        data = run_async(_client(recorder).graphql("query { ok }", {"a": 1}))

        assert data == {"ok": True}
        assert str(recorder.requests[0].url) == "https://api.github.com/graphql"
        assert json.loads(recorder.requests[0].content) == {
            "query": "query { ok }",
            "variables": {"a": 1},
        }

    def test_errors_raise(self):
        recorder = Recorder(
            httpx.Response(200, json={"data": None, "errors": [{"message": "bad id"}]})
        )

        with pytest.raises(GraphQLError, match="bad id") as exc_info:
            run_async(_client(recorder).graphql("mutation { x }"))

        assert exc_info.value.errors == [{"message": "bad id"}]

    @pytest.mark.parametrize(
        "base_url, expected",
        [
            ("https://api.github.com", "https://api.github.com/graphql"),
            ("https://github.example.com/api/v3", "https://github.example.com/api/graphql"),
            ("https://github.example.com/api/v3/", "https://github.example.com/api/graphql"),
        ],
    )
    def test_graphql_url(self, base_url, expected):
        assert GitHubClient(token="t", base_url=base_url).graphql_url == expected
