"""Async GitHub GraphQL client with rate-limit handling and retries."""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any

import httpx
import structlog

from repowatch.engines.activity_tracker.models import RepoVerification, Snapshot

log = structlog.get_logger("repowatch.engine")

GRAPHQL_URL = "https://api.github.com/graphql"

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
# longest rate-limit pause; must stay well below the check-trackers lock TTL
DEFAULT_MAX_RATE_LIMIT_WAIT = 60

ACTIVITY_QUERY = """
query RepoActivity($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    id
    nameWithOwner
    url
    description
    stargazerCount
    forkCount
    repositoryTopics(first: 10) { nodes { topic { name } } }
    defaultBranchRef {
      name
      target { ... on Commit { oid committedDate } }
    }
    refs(refPrefix: "refs/heads/", first: 100) {
      nodes { name target { ... on Commit { oid committedDate } } }
    }
    pullRequests(first: 20, orderBy: {field: UPDATED_AT, direction: DESC},
                 states: [OPEN, MERGED, CLOSED]) {
      nodes {
        number title url state createdAt updatedAt closedAt mergedAt merged
        baseRefName headRefName
        author { login }
        mergedBy { login }
      }
    }
    issues(first: 20, orderBy: {field: UPDATED_AT, direction: DESC},
           states: [OPEN, CLOSED]) {
      nodes {
        number title url state createdAt updatedAt closedAt
        author { login }
        labels(first: 10) { nodes { name } }
      }
    }
    releases(first: 5, orderBy: {field: CREATED_AT, direction: DESC}) {
      nodes { tagName name publishedAt isPrerelease url description author { login } }
    }
    forks(first: 10, orderBy: {field: CREATED_AT, direction: DESC}) {
      nodes { nameWithOwner createdAt owner { login } }
    }
    mentionableUsers(first: 100) { nodes { login } }
  }
  rateLimit { remaining resetAt cost }
}
"""

VERIFY_QUERY = """
query VerifyRepo($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    id
    nameWithOwner
    url
    isPrivate
    isArchived
    isFork
    defaultBranchRef { name }
  }
}
"""


class GitHubAPIError(Exception):
    """GraphQL returned errors, or the request kept failing after retries."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class RepositoryNotFoundError(GitHubAPIError):
    def __init__(self, owner: str, name: str) -> None:
        self.owner = owner
        self.name = name
        super().__init__(f"repository {owner}/{name} not found")


class GitHubGraphQLClient:
    """Thin async wrapper around the GitHub GraphQL endpoint."""

    def __init__(
        self,
        token: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        max_rate_limit_wait: int = DEFAULT_MAX_RATE_LIMIT_WAIT,
    ) -> None:
        self._max_rate_limit_wait = max_rate_limit_wait
        resolved_token = token or os.environ.get("GITHUB_TOKEN")
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if resolved_token:
            headers["Authorization"] = f"Bearer {resolved_token}"
        self._client = httpx.AsyncClient(headers=headers, timeout=30.0, transport=transport)

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubGraphQLClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def fetch_snapshot(self, owner: str, name: str) -> Snapshot:
        data = await self.query(ACTIVITY_QUERY, {"owner": owner, "name": name})
        repo = data.get("repository")
        if repo is None:
            raise RepositoryNotFoundError(owner, name)
        return Snapshot.from_graphql(repo)

    async def verify_repository(self, owner: str, name: str) -> RepoVerification:
        """Check that *owner/name* exists and report its visibility flags.

        A missing repository is reported as ``exists=False`` rather than raised.
        """
        try:
            data = await self.query(VERIFY_QUERY, {"owner": owner, "name": name})
        except RepositoryNotFoundError:
            return RepoVerification(exists=False)
        repo = data.get("repository")
        if repo is None:
            return RepoVerification(exists=False)
        branch = repo.get("defaultBranchRef") or {}
        return RepoVerification(
            exists=True,
            is_private=bool(repo.get("isPrivate")),
            is_archived=bool(repo.get("isArchived")),
            is_fork=bool(repo.get("isFork")),
            name_with_owner=repo.get("nameWithOwner"),
            default_branch=branch.get("name"),
            url=repo.get("url"),
        )

    async def query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query and return its ``data`` object.

        Raises :class:`RepositoryNotFoundError` on a ``NOT_FOUND`` error and
        :class:`GitHubAPIError` on any other GraphQL error.
        """
        response = await self._post_with_retry({"query": query, "variables": variables})
        body = response.json()

        errors = body.get("errors") or []
        if errors:
            if any(e.get("type") == "NOT_FOUND" for e in errors):
                raise RepositoryNotFoundError(
                    variables.get("owner", ""), variables.get("name", "")
                )
            messages = "; ".join(e.get("message", "unknown error") for e in errors)
            log.error("github.graphql_errors", errors=messages)
            raise GitHubAPIError(f"graphql errors: {messages}", errors)

        data = body.get("data") or {}
        rate = data.get("rateLimit")
        if rate:
            log.debug(
                "github.rate_limit",
                remaining=rate.get("remaining"),
                cost=rate.get("cost"),
                reset_at=rate.get("resetAt"),
            )
        return data

    # ── internal ───────────────────────────────────────────────────────────

    async def _post_with_retry(self, payload: dict[str, Any]) -> httpx.Response:
        """POST with exponential backoff on 5xx, rate-limit, and timeout errors."""
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.post(GRAPHQL_URL, json=payload)

                if resp.status_code in (403, 429) and self._is_rate_limited(resp):
                    wait = self._get_rate_limit_wait(resp)
                    if wait > self._max_rate_limit_wait:
                        log.warning(
                            "github.rate_limit_exceeds_budget",
                            wait_seconds=wait,
                            max_wait=self._max_rate_limit_wait,
                        )
                        raise GitHubAPIError(
                            f"rate limited for {wait}s "
                            f"(max wait {self._max_rate_limit_wait}s)"
                        )
                    log.warning(
                        "github.rate_limited",
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=_MAX_RETRIES,
                    )
                    await asyncio.sleep(wait)
                    last_exc = GitHubAPIError(f"rate limited, retry after {wait}s")
                    continue

                if resp.status_code < 500:
                    if resp.is_error:
                        raise GitHubAPIError(
                            f"github api error: {resp.status_code} {resp.reason_phrase}"
                        )
                    return resp

                log.warning(
                    "github.server_error",
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = GitHubAPIError(f"github api error: {resp.status_code}")
            except httpx.TimeoutException as exc:
                log.warning("github.timeout", attempt=attempt + 1, max_retries=_MAX_RETRIES)
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        raise last_exc  # type: ignore[misc]

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.headers.get("X-RateLimit-Remaining") == "0":
            return True
        return "Retry-After" in response.headers

    @staticmethod
    def _get_rate_limit_wait(response: httpx.Response) -> int:
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(int(retry_after), 1)
            except ValueError:
                pass
        reset_ts = response.headers.get("X-RateLimit-Reset")
        if reset_ts is not None:
            try:
                return max(int(reset_ts) - int(time.time()), 1)
            except ValueError:
                pass
        return 60
