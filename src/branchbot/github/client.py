"""GitHub API client for the calls the bot makes.

This module provides an async wrapper around the GitHub REST and GraphQL
APIs for:
- Listing issue comments (paginated)
- Creating comments on issues
- Reading a branch head and creating refs
- Reading repository files (the bot's config file)
- Running GraphQL mutations (project linkage)

Includes optional retry logic for transient failures. Retries are off
unless the caller asks for them, so by default every call is attempted
exactly once.
"""

import asyncio
import base64
import binascii
import logging
import random
import time
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import httpx


logger = logging.getLogger(__name__)

# GitHub's maximum page size for list endpoints
MAX_PER_PAGE = 100


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GraphQLError(GitHubAPIError):
    """Raised when a GraphQL response carries an ``errors`` array.

    GitHub answers failed GraphQL operations with HTTP 200, so these are
    not caught by the status-code checks in ``_request``.

    Attributes:
        errors: The raw ``errors`` entries from the response.
    """

    def __init__(self, message: str, errors: List[Dict[str, Any]], **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = errors


class GitHubClient:
    """Async GitHub API client.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> client = GitHubClient(token="ghp_xxx")
        >>> async with client:
        ...     await client.create_comment("owner", "repo", 123, "Hello!")
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 0,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests to stub
                       the network.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    @property
    def graphql_url(self) -> str:
        """GraphQL endpoint for the configured base URL.

        github.com serves GraphQL at ``/graphql`` next to the REST root,
        while GitHub Enterprise serves REST at ``/api/v3`` and GraphQL at
        ``/api/graphql``.
        """
        if self.base_url.endswith("/api/v3"):
            return self.base_url[: -len("/v3")] + "/graphql"
        return f"{self.base_url}/graphql"

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "branchbot/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(
        self,
        exc_type: Any,
        exc_val: Any,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    def _parse_int_header(
        self,
        headers: httpx.Headers,
        name: str,
    ) -> Optional[int]:
        value = headers.get(name)
        if value is not None:
            try:
                return int(value)
            except ValueError:
                pass
        return None

    async def _handle_rate_limit(
        self,
        response: httpx.Response,
    ) -> None:
        """Raise a RateLimitError describing when to retry.

        Raises:
            RateLimitError: With information about when to retry.
        """
        reset_at = self._parse_int_header(response.headers, "x-ratelimit-reset")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        retry_after_header = self._parse_int_header(response.headers, "retry-after")
        if retry_after_header is not None:
            retry_after = retry_after_header

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "reset_at": reset_at,
                "retry_after": retry_after,
                "limit": self._parse_int_header(response.headers, "x-ratelimit-limit"),
            },
        )

        raise RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
            request_url=str(response.url),
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request, retrying transient failures.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH).
            path: API path (e.g., /repos/owner/repo/issues/1/comments)
                  or an absolute URL.
            json_data: Optional JSON body for the request.
            params: Optional query parameters.

        Returns:
            The HTTP response from GitHub.

        Raises:
            GitHubAPIError: If the request fails after all retries.
            RateLimitError: If rate limit is exceeded.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                )

                if response.status_code == 403:
                    remaining = self._parse_int_header(
                        response.headers,
                        "x-ratelimit-remaining",
                    )
                    if remaining == 0:
                        await self._handle_rate_limit(response)

                if response.status_code == 429:
                    await self._handle_rate_limit(response)

                if response.status_code in self.RETRYABLE_STATUS_CODES:
                    if attempt < self.max_retries:
                        delay = self._calculate_backoff(attempt)
                        logger.warning(
                            "Retryable error from GitHub API",
                            extra={
                                "status_code": response.status_code,
                                "attempt": attempt + 1,
                                "max_retries": self.max_retries,
                                "delay": delay,
                                "path": path,
                            },
                        )
                        await asyncio.sleep(delay)
                        continue

                if response.status_code >= 400:
                    error_body = response.text
                    logger.debug(
                        "GitHub API error",
                        extra={
                            "status_code": response.status_code,
                            "path": path,
                            "method": method,
                            "response_body": error_body[:500],
                        },
                    )
                    raise GitHubAPIError(
                        message=f"GitHub API error: {response.status_code}",
                        status_code=response.status_code,
                        response_body=error_body,
                        request_url=str(response.url),
                    )

                return response

            except GitHubAPIError:
                raise
            except httpx.RequestError as e:
                # TimeoutException is a RequestError subclass
                last_exception = e
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Request error, retrying",
                        extra={
                            "error": str(e),
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "delay": delay,
                            "path": path,
                        },
                    )
                    await asyncio.sleep(delay)
                    continue

        logger.error(
            "GitHub API request failed",
            extra={
                "path": path,
                "method": method,
                "max_retries": self.max_retries,
                "last_error": str(last_exception),
            },
        )
        raise GitHubAPIError(
            message=f"Request failed after {self.max_retries} retries: {last_exception}",
            request_url=path if path.startswith("http") else f"{self.base_url}{path}",
        )

    # ------------------------------------------------------------------
    # Issue comments
    # ------------------------------------------------------------------

    async def list_issue_comments(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        page: int = 1,
        per_page: int = MAX_PER_PAGE,
    ) -> List[Dict[str, Any]]:
        """Fetch one page of comments on an issue.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            issue_number: Issue number.
            page: 1-indexed page number.
            per_page: Page size, at most 100.

        Returns:
            The comment objects on that page (may be empty).

        Raises:
            GitHubAPIError: If the request fails.
        """
        path = f"/repos/{owner}/{repo}/issues/{issue_number}/comments"
        response = await self._request(
            method="GET",
            path=path,
            params={"page": page, "per_page": per_page},
        )
        return response.json()

    async def iter_issue_comment_pages(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        per_page: int = MAX_PER_PAGE,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield every page of comments on an issue, in order.

        Pages are requested lazily until one comes back shorter than
        ``per_page``. The number of pages is never derived from the
        issue's comment count, so comments added or removed while paging
        cannot truncate the scan. Each call starts again from page 1.

        Yields:
            Non-empty lists of comment objects.
        """
        page = 1
        while True:
            comments = await self.list_issue_comments(
                owner, repo, issue_number, page=page, per_page=per_page
            )
            if comments:
                yield comments
            if len(comments) < per_page:
                return
            page += 1

    async def create_comment(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        body: str,
    ) -> Dict[str, Any]:
        """Create a comment on an issue.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            issue_number: Issue number to comment on.
            body: Comment body in markdown format.

        Returns:
            The created comment data from GitHub API.

        Raises:
            GitHubAPIError: If the request fails.
        """
        path = f"/repos/{owner}/{repo}/issues/{issue_number}/comments"

        logger.info(
            "Creating comment on issue",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "body_length": len(body),
            },
        )

        response = await self._request(
            method="POST",
            path=path,
            json_data={"body": body},
        )

        result = response.json()
        logger.info(
            "Comment created successfully",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "comment_id": result.get("id"),
            },
        )

        return result

    # ------------------------------------------------------------------
    # Branches and refs
    # ------------------------------------------------------------------

    async def get_branch_sha(
        self,
        owner: str,
        repo: str,
        branch: str,
    ) -> Optional[str]:
        """Get the head commit sha of a branch.

        Returns:
            The sha, or None if the response carries no commit.

        Raises:
            GitHubAPIError: If the request fails, including 404 for an
                            unknown branch.
        """
        path = f"/repos/{owner}/{repo}/branches/{quote(branch, safe='/')}"

        logger.debug(
            "Getting branch head",
            extra={"owner": owner, "repo": repo, "branch": branch},
        )

        response = await self._request(method="GET", path=path)
        commit = response.json().get("commit") or {}
        return commit.get("sha")

    async def create_ref(
        self,
        owner: str,
        repo: str,
        ref: str,
        sha: str,
    ) -> Dict[str, Any]:
        """Create a git reference.

        Args:
            owner: Repository owner.
            repo: Repository name.
            ref: Fully qualified ref name, e.g. ``refs/heads/7_add_dark_mode``.
            sha: Commit the ref should point at.

        Returns:
            The created ref data from GitHub API.

        Raises:
            GitHubAPIError: If the request fails. GitHub answers 422 when
                            the ref already exists.
        """
        path = f"/repos/{owner}/{repo}/git/refs"

        logger.info(
            "Creating ref",
            extra={"owner": owner, "repo": repo, "ref": ref, "sha": sha},
        )

        response = await self._request(
            method="POST",
            path=path,
            json_data={"ref": ref, "sha": sha},
        )
        return response.json()

    # ------------------------------------------------------------------
    # Repository contents
    # ------------------------------------------------------------------

    async def get_file_content(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: Optional[str] = None,
    ) -> Optional[str]:
        """Read a text file from a repository.

        Args:
            owner: Repository owner.
            repo: Repository name.
            path: File path inside the repository.
            ref: Branch, tag or sha to read from (default branch if None).

        Returns:
            The decoded file content, or None if the file does not exist.

        Raises:
            GitHubAPIError: If the request fails for any reason other than
                            404, or the path is not a regular file.
        """
        api_path = f"/repos/{owner}/{repo}/contents/{quote(path.lstrip('/'), safe='/')}"
        params = {"ref": ref} if ref else None

        try:
            response = await self._request(method="GET", path=api_path, params=params)
        except GitHubAPIError as e:
            if e.status_code == 404:
                logger.debug(
                    "File not found in repository",
                    extra={"owner": owner, "repo": repo, "path": path, "ref": ref},
                )
                return None
            raise

        data = response.json()
        if not isinstance(data, dict) or data.get("type") != "file":
            raise GitHubAPIError(
                message=f"{path} is not a file",
                status_code=response.status_code,
                request_url=str(response.url),
            )

        content = data.get("content") or ""
        if data.get("encoding") != "base64":
            return content
        try:
            return base64.b64decode(content).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise GitHubAPIError(
                message=f"Could not decode {path}: {e}",
                status_code=response.status_code,
                request_url=str(response.url),
            ) from e

    # ------------------------------------------------------------------
    # GraphQL
    # ------------------------------------------------------------------

    async def graphql(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Run a GraphQL query or mutation.

        Returns:
            The ``data`` member of the response.

        Raises:
            GraphQLError: If the response contains errors.
            GitHubAPIError: If the HTTP request fails.
        """
        response = await self._request(
            method="POST",
            path=self.graphql_url,
            json_data={"query": query, "variables": variables or {}},
        )
        payload = response.json()

        errors = payload.get("errors")
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            raise GraphQLError(
                message=f"GraphQL error: {messages}",
                errors=errors,
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.url),
            )

        return payload.get("data") or {}
