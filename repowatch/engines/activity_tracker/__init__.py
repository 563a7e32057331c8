"""Activity tracker engine — snapshot diffing and event derivation without DB access."""

from repowatch.engines.activity_tracker.dedup import event_signature
from repowatch.engines.activity_tracker.detector import EventDetector
from repowatch.engines.activity_tracker.github_client import (
    GitHubAPIError,
    GitHubGraphQLClient,
    RepositoryNotFoundError,
)
from repowatch.engines.activity_tracker.models import (
    DetectedEvent,
    ProcessResult,
    RepoVerification,
    RunReport,
    Snapshot,
)
from repowatch.engines.activity_tracker.signature import activity_signature

__all__ = [
    "DetectedEvent",
    "EventDetector",
    "GitHubAPIError",
    "GitHubGraphQLClient",
    "ProcessResult",
    "RepoVerification",
    "RepositoryNotFoundError",
    "RunReport",
    "Snapshot",
    "activity_signature",
    "event_signature",
]
