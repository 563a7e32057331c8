"""Runtime settings read from ``REPOWATCH_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, default))


@dataclass(frozen=True)
class Settings:
    """Deployment parameters for the tracker and notification jobs.

    ``lookback_minutes`` must stay >= the external poll interval, otherwise
    changes that happen between two polls can fall outside every window.
    """

    database_url: str | None = None
    redis_url: str | None = None
    cron_secret: str | None = None
    github_token: str | None = None

    lookback_minutes: int = 30
    max_error_count: int = 10
    batch_size: int = 5
    batch_delay: float = 2.0
    snapshot_ttl: int = 600
    lock_ttl: int = 300
    max_rate_limit_wait: int = 60

    notify_batch_size: int = 10
    notify_delay: float = 0.1

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            database_url=os.environ.get("REPOWATCH_DATABASE_URL"),
            redis_url=os.environ.get("REPOWATCH_REDIS_URL") or None,
            cron_secret=os.environ.get("REPOWATCH_CRON_SECRET") or None,
            github_token=os.environ.get("GITHUB_TOKEN") or None,
            lookback_minutes=_env_int("REPOWATCH_LOOKBACK_MINUTES", 30),
            max_error_count=_env_int("REPOWATCH_MAX_ERROR_COUNT", 10),
            batch_size=_env_int("REPOWATCH_BATCH_SIZE", 5),
            batch_delay=_env_float("REPOWATCH_BATCH_DELAY", 2.0),
            snapshot_ttl=_env_int("REPOWATCH_SNAPSHOT_TTL", 600),
            lock_ttl=_env_int("REPOWATCH_LOCK_TTL", 300),
            max_rate_limit_wait=_env_int("REPOWATCH_MAX_RATE_LIMIT_WAIT", 60),
            notify_batch_size=_env_int("REPOWATCH_NOTIFY_BATCH_SIZE", 10),
            notify_delay=_env_float("REPOWATCH_NOTIFY_DELAY", 0.1),
        )
