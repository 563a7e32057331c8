"""Data models for the activity tracker engine."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

# ── subscription kinds ────────────────────────────────────────────────────

NEW_PR = "new_pr"
PR_MERGED = "pr_merged"
PR_MERGED_TO_DEFAULT = "pr_merged_to_default"
PR_MERGED_TO_BRANCH = "pr_merged_to_branch"
MERGE_TO_MAIN = "merge_to_main"  # alias of PR_MERGED_TO_DEFAULT
NEW_ISSUE = "new_issue"
NEW_ISSUE_WITH_TAG = "new_issue_with_tag"
NEW_ISSUE_WITH_CUSTOM_TAG = "new_issue_with_custom_tag"
NEW_BRANCH = "new_branch"
NEW_RELEASE = "new_release"
NEW_PRE_RELEASE = "new_pre_release"
NEW_FORK = "new_fork"
NEW_CONTRIBUTOR = "new_contributor"
STARS_MILESTONE = "stars_milestone"

PARAMETERISED_KINDS = frozenset({PR_MERGED_TO_BRANCH, NEW_ISSUE_WITH_TAG, NEW_ISSUE_WITH_CUSTOM_TAG})
SIMPLE_KINDS = frozenset(
    {
        NEW_PR,
        PR_MERGED,
        PR_MERGED_TO_DEFAULT,
        MERGE_TO_MAIN,
        NEW_ISSUE,
        NEW_BRANCH,
        NEW_RELEASE,
        NEW_PRE_RELEASE,
        NEW_FORK,
        NEW_CONTRIBUTOR,
        STARS_MILESTONE,
    }
)

STAR_MILESTONES = (100, 500, 1000, 5000, 10000)
UNKNOWN_AUTHOR = "unknown"


def parse_subscription(value: str) -> tuple[str, str | None]:
    """Split ``"kind:param"`` into ``(kind, param)``; plain kinds get ``None``."""
    kind, sep, param = value.partition(":")
    return kind, (param if sep else None)


# ── snapshot ──────────────────────────────────────────────────────────────


@dataclass
class DefaultBranch:
    name: str
    oid: str | None = None
    committed_date: str | None = None


@dataclass
class Branch:
    name: str
    oid: str | None = None
    committed_date: str | None = None


@dataclass
class PullRequest:
    number: int
    title: str = ""
    url: str = ""
    state: str = "OPEN"
    created_at: str | None = None
    updated_at: str | None = None
    closed_at: str | None = None
    merged_at: str | None = None
    merged: bool = False
    base_ref_name: str | None = None
    head_ref_name: str | None = None
    author: str | None = None
    merged_by: str | None = None


@dataclass
class Issue:
    number: int
    title: str = ""
    url: str = ""
    state: str = "OPEN"
    created_at: str | None = None
    updated_at: str | None = None
    closed_at: str | None = None
    author: str | None = None
    labels: list[str] = field(default_factory=list)


@dataclass
class Release:
    tag_name: str
    name: str | None = None
    published_at: str | None = None
    is_prerelease: bool = False
    url: str = ""
    description: str | None = None
    author: str | None = None


@dataclass
class Fork:
    name_with_owner: str
    created_at: str | None = None
    owner: str | None = None


@dataclass
class Snapshot:
    """Complete observed state of one repository at one poll.

    Timestamps are kept as the ISO-8601 strings GitHub returns so the
    snapshot round-trips through the cache unchanged.
    """

    name_with_owner: str
    url: str
    node_id: str | None = None
    description: str | None = None
    stargazer_count: int = 0
    fork_count: int = 0
    topics: list[str] = field(default_factory=list)
    default_branch: DefaultBranch | None = None
    branches: list[Branch] = field(default_factory=list)
    pull_requests: list[PullRequest] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    releases: list[Release] = field(default_factory=list)
    forks: list[Fork] = field(default_factory=list)
    contributors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        default_branch = data.get("default_branch")
        return cls(
            name_with_owner=data["name_with_owner"],
            url=data["url"],
            node_id=data.get("node_id"),
            description=data.get("description"),
            stargazer_count=data.get("stargazer_count", 0),
            fork_count=data.get("fork_count", 0),
            topics=list(data.get("topics", [])),
            default_branch=DefaultBranch(**default_branch) if default_branch else None,
            branches=[Branch(**b) for b in data.get("branches", [])],
            pull_requests=[PullRequest(**pr) for pr in data.get("pull_requests", [])],
            issues=[Issue(**i) for i in data.get("issues", [])],
            releases=[Release(**r) for r in data.get("releases", [])],
            forks=[Fork(**f) for f in data.get("forks", [])],
            contributors=list(data.get("contributors", [])),
        )

    @classmethod
    def from_graphql(cls, repo: dict[str, Any]) -> Snapshot:
        """Build a snapshot from the ``repository`` object of the activity query."""
        ref = repo.get("defaultBranchRef")
        default_branch = None
        if ref:
            target = ref.get("target") or {}
            default_branch = DefaultBranch(
                name=ref["name"],
                oid=target.get("oid"),
                committed_date=target.get("committedDate"),
            )

        return cls(
            node_id=repo.get("id"),
            name_with_owner=repo["nameWithOwner"],
            url=repo["url"],
            description=repo.get("description"),
            stargazer_count=repo.get("stargazerCount") or 0,
            fork_count=repo.get("forkCount") or 0,
            topics=[
                n["topic"]["name"] for n in _nodes(repo, "repositoryTopics") if n.get("topic")
            ],
            default_branch=default_branch,
            branches=[
                Branch(
                    name=n["name"],
                    oid=(n.get("target") or {}).get("oid"),
                    committed_date=(n.get("target") or {}).get("committedDate"),
                )
                for n in _nodes(repo, "refs")
            ],
            pull_requests=[
                PullRequest(
                    number=n["number"],
                    title=n.get("title") or "",
                    url=n.get("url") or "",
                    state=n.get("state") or "OPEN",
                    created_at=n.get("createdAt"),
                    updated_at=n.get("updatedAt"),
                    closed_at=n.get("closedAt"),
                    merged_at=n.get("mergedAt"),
                    merged=bool(n.get("merged")),
                    base_ref_name=n.get("baseRefName"),
                    head_ref_name=n.get("headRefName"),
                    author=_login(n.get("author")),
                    merged_by=_login(n.get("mergedBy")),
                )
                for n in _nodes(repo, "pullRequests")
            ],
            issues=[
                Issue(
                    number=n["number"],
                    title=n.get("title") or "",
                    url=n.get("url") or "",
                    state=n.get("state") or "OPEN",
                    created_at=n.get("createdAt"),
                    updated_at=n.get("updatedAt"),
                    closed_at=n.get("closedAt"),
                    author=_login(n.get("author")),
                    labels=[label["name"] for label in _nodes(n, "labels")],
                )
                for n in _nodes(repo, "issues")
            ],
            releases=[
                Release(
                    tag_name=n["tagName"],
                    name=n.get("name"),
                    published_at=n.get("publishedAt"),
                    is_prerelease=bool(n.get("isPrerelease")),
                    url=n.get("url") or "",
                    description=n.get("description"),
                    author=_login(n.get("author")),
                )
                for n in _nodes(repo, "releases")
            ],
            forks=[
                Fork(
                    name_with_owner=n["nameWithOwner"],
                    created_at=n.get("createdAt"),
                    owner=_login(n.get("owner")),
                )
                for n in _nodes(repo, "forks")
            ],
            contributors=[n["login"] for n in _nodes(repo, "mentionableUsers")],
        )


def _nodes(obj: dict[str, Any], key: str) -> list[dict[str, Any]]:
    conn = obj.get(key) or {}
    return [n for n in (conn.get("nodes") or []) if n]


def _login(actor: dict[str, Any] | None) -> str | None:
    if not actor:
        return None
    return actor.get("login")


@dataclass
class RepoVerification:
    """Result of verifying a repository before tracking it."""

    exists: bool
    is_private: bool = False
    is_archived: bool = False
    is_fork: bool = False
    name_with_owner: str | None = None
    default_branch: str | None = None
    url: str | None = None


# ── events ────────────────────────────────────────────────────────────────


@dataclass
class DetectedEvent:
    """A candidate event produced by the detector. Not persisted as-is."""

    type: str
    title: str
    url: str
    author: str
    timestamp: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ProcessResult:
    """Outcome of checking one tracker."""

    tracker_id: uuid.UUID
    repo_full_name: str = ""
    events_detected: int = 0
    events: list[DetectedEvent] = field(default_factory=list)
    error: str | None = None


@dataclass
class RunReport:
    """Aggregate outcome of one check-trackers invocation."""

    skipped: bool = False
    message: str = ""
    duration_ms: int = 0
    results: list[ProcessResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def errored(self) -> int:
        return sum(1 for r in self.results if r.error)

    @property
    def succeeded(self) -> int:
        return self.processed - self.errored

    @property
    def total_events(self) -> int:
        return sum(r.events_detected for r in self.results)
