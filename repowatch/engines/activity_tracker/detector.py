"""Event detector — diff two snapshots into typed, timestamped events."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone

from repowatch.engines.activity_tracker.models import (
    MERGE_TO_MAIN,
    NEW_BRANCH,
    NEW_CONTRIBUTOR,
    NEW_FORK,
    NEW_ISSUE,
    NEW_ISSUE_WITH_CUSTOM_TAG,
    NEW_ISSUE_WITH_TAG,
    NEW_PR,
    NEW_PRE_RELEASE,
    NEW_RELEASE,
    PR_MERGED,
    PR_MERGED_TO_BRANCH,
    PR_MERGED_TO_DEFAULT,
    STAR_MILESTONES,
    STARS_MILESTONE,
    UNKNOWN_AUTHOR,
    DetectedEvent,
    Issue,
    PullRequest,
    Snapshot,
    parse_subscription,
)

DEFAULT_LOOKBACK = timedelta(minutes=30)


class EventDetector:
    """Compare a fresh snapshot against the previously observed one.

    Without a previous snapshot the first observation only establishes a
    baseline, so :meth:`detect` returns no events at all.
    """

    def __init__(
        self,
        tracked_events: Iterable[str],
        cached: Snapshot | None = None,
        *,
        lookback: timedelta = DEFAULT_LOOKBACK,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._tracked = list(dict.fromkeys(tracked_events))
        self._cached = cached
        self._lookback = lookback
        self._now = now or (lambda: datetime.now(timezone.utc))

    def detect(self, snapshot: Snapshot) -> list[DetectedEvent]:
        if self._cached is None:
            return []

        tracked = set(self._tracked)
        events: list[DetectedEvent] = []

        if NEW_PR in tracked:
            events.extend(self._new_prs(snapshot))

        if NEW_ISSUE in tracked:
            events.extend(self._new_issues(snapshot))

        for subscription in self._tracked:
            kind, param = parse_subscription(subscription)
            if not param:
                continue
            if kind in (NEW_ISSUE_WITH_TAG, NEW_ISSUE_WITH_CUSTOM_TAG):
                events.extend(self._new_issues(snapshot, tag=param, event_type=subscription))
            elif kind == PR_MERGED_TO_BRANCH:
                events.extend(self._merged_prs(snapshot, param, event_type=subscription))

        if PR_MERGED_TO_DEFAULT in tracked or MERGE_TO_MAIN in tracked:
            if snapshot.default_branch is not None:
                events.extend(
                    self._merged_prs(
                        snapshot, snapshot.default_branch.name, event_type=PR_MERGED_TO_DEFAULT
                    )
                )

        if PR_MERGED in tracked:
            events.extend(self._merged_prs(snapshot, None, event_type=PR_MERGED))

        if NEW_BRANCH in tracked:
            events.extend(self._new_branches(snapshot))

        if NEW_RELEASE in tracked:
            events.extend(self._new_releases(snapshot, prerelease=False))

        if NEW_PRE_RELEASE in tracked:
            events.extend(self._new_releases(snapshot, prerelease=True))

        if NEW_FORK in tracked:
            events.extend(self._new_forks(snapshot))

        if NEW_CONTRIBUTOR in tracked:
            events.extend(self._new_contributors(snapshot))

        if STARS_MILESTONE in tracked:
            milestone = self._stars_milestone(snapshot)
            if milestone is not None:
                events.append(milestone)

        return events

    # ── rules ─────────────────────────────────────────────────────────────

    def _merged_prs(
        self, snapshot: Snapshot, target_branch: str | None, *, event_type: str
    ) -> list[DetectedEvent]:
        events = []
        for pr in snapshot.pull_requests:
            if not pr.merged or not pr.merged_at:
                continue
            if target_branch is not None and pr.base_ref_name != target_branch:
                continue
            if not self._within_lookback(pr.merged_at):
                continue
            suffix = f" to {target_branch}" if target_branch else ""
            events.append(
                DetectedEvent(
                    type=event_type,
                    title=f"PR #{pr.number} merged{suffix}: {pr.title}",
                    url=pr.url,
                    author=pr.merged_by or pr.author or UNKNOWN_AUTHOR,
                    timestamp=pr.merged_at,
                    metadata={
                        "prNumber": pr.number,
                        "branch": pr.base_ref_name,
                        "headBranch": pr.head_ref_name,
                    },
                )
            )
        return events

    def _new_branches(self, snapshot: Snapshot) -> list[DetectedEvent]:
        old = {b.name for b in self._cached.branches}
        return [
            DetectedEvent(
                type=NEW_BRANCH,
                title=f"new branch created: {branch.name}",
                url=f"{snapshot.url}/tree/{branch.name}",
                author=UNKNOWN_AUTHOR,
                timestamp=branch.committed_date or self._now_iso(),
                metadata={"branchName": branch.name, "latestCommit": branch.oid},
            )
            for branch in snapshot.branches
            if branch.name not in old
        ]

    def _new_issues(
        self, snapshot: Snapshot, *, tag: str | None = None, event_type: str = NEW_ISSUE
    ) -> list[DetectedEvent]:
        old = {i.number for i in self._cached.issues}
        events = []
        for issue in snapshot.issues:
            if issue.number in old or not self._within_lookback(issue.created_at):
                continue
            if tag is not None and tag not in issue.labels:
                continue
            events.append(self._issue_event(issue, event_type, tag))
        return events

    @staticmethod
    def _issue_event(issue: Issue, event_type: str, tag: str | None) -> DetectedEvent:
        metadata: dict = {"issueNumber": issue.number, "state": issue.state}
        if tag is not None:
            metadata["tag"] = tag
        return DetectedEvent(
            type=event_type,
            title=f"new issue #{issue.number}: {issue.title}",
            url=issue.url,
            author=issue.author or UNKNOWN_AUTHOR,
            timestamp=issue.created_at,
            metadata=metadata,
        )

    def _new_prs(self, snapshot: Snapshot) -> list[DetectedEvent]:
        old = {pr.number for pr in self._cached.pull_requests}
        return [
            self._pr_event(pr)
            for pr in snapshot.pull_requests
            if pr.number not in old and self._within_lookback(pr.created_at)
        ]

    @staticmethod
    def _pr_event(pr: PullRequest) -> DetectedEvent:
        return DetectedEvent(
            type=NEW_PR,
            title=f"new PR #{pr.number}: {pr.title}",
            url=pr.url,
            author=pr.author or UNKNOWN_AUTHOR,
            timestamp=pr.created_at,
            metadata={
                "prNumber": pr.number,
                "baseRef": pr.base_ref_name,
                "headRef": pr.head_ref_name,
            },
        )

    def _new_releases(self, snapshot: Snapshot, *, prerelease: bool) -> list[DetectedEvent]:
        old = {r.tag_name for r in self._cached.releases}
        label = "pre-release" if prerelease else "release"
        return [
            DetectedEvent(
                type=NEW_PRE_RELEASE if prerelease else NEW_RELEASE,
                title=f"new {label}: {release.name or release.tag_name}",
                url=release.url,
                author=release.author or UNKNOWN_AUTHOR,
                timestamp=release.published_at or self._now_iso(),
                metadata={
                    "tagName": release.tag_name,
                    "isPrerelease": release.is_prerelease,
                    "description": release.description,
                },
            )
            for release in snapshot.releases
            if release.tag_name not in old and release.is_prerelease == prerelease
        ]

    def _new_forks(self, snapshot: Snapshot) -> list[DetectedEvent]:
        old = {f.name_with_owner for f in self._cached.forks}
        events = []
        for fork in snapshot.forks:
            if fork.name_with_owner in old or not self._within_lookback(fork.created_at):
                continue
            owner = fork.owner or UNKNOWN_AUTHOR
            events.append(
                DetectedEvent(
                    type=NEW_FORK,
                    title=f"repository forked by {owner}",
                    url=f"https://github.com/{fork.name_with_owner}",
                    author=owner,
                    timestamp=fork.created_at,
                    metadata={"forkName": fork.name_with_owner},
                )
            )
        return events

    def _new_contributors(self, snapshot: Snapshot) -> list[DetectedEvent]:
        old = set(self._cached.contributors)
        now = self._now_iso()
        return [
            DetectedEvent(
                type=NEW_CONTRIBUTOR,
                title=f"new contributor: {login}",
                url=f"https://github.com/{login}",
                author=login,
                timestamp=now,
                metadata={"contributorLogin": login},
            )
            for login in snapshot.contributors
            if login not in old
        ]

    def _stars_milestone(self, snapshot: Snapshot) -> DetectedEvent | None:
        old_stars = self._cached.stargazer_count
        new_stars = snapshot.stargazer_count
        for milestone in STAR_MILESTONES:
            if old_stars < milestone <= new_stars:
                return DetectedEvent(
                    type=STARS_MILESTONE,
                    title=f"{snapshot.name_with_owner} reached {milestone} stars!",
                    url=snapshot.url,
                    author="community",
                    timestamp=self._now_iso(),
                    metadata={"milestone": milestone, "currentStars": new_stars},
                )
        return None

    # ── helpers ───────────────────────────────────────────────────────────

    def _within_lookback(self, value: str | None) -> bool:
        when = parse_datetime(value)
        if when is None:
            return False
        return self._now() - when <= self._lookback

    def _now_iso(self) -> str:
        return self._now().isoformat()


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 datetime string, returning None on failure."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
