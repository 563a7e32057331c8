"""Dependency injection — settings, session factory, and component singletons."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from repowatch.core.config import Settings
from repowatch.core.database import create_engine, create_session_factory
from repowatch.dao.event_log_dao import EventLogDAO
from repowatch.dao.tracked_repo_dao import TrackedRepoDAO
from repowatch.dao.user_dao import UserDAO
from repowatch.engines.activity_tracker.github_client import GitHubGraphQLClient
from repowatch.engines.activity_tracker.runner import TrackerCheckRunner
from repowatch.engines.notification.mailer import Mailer
from repowatch.engines.notification.runner import NotificationRunner
from repowatch.engines.notification.sender import EmailNotificationSender
from repowatch.services.event_log_service import EventLogService
from repowatch.services.tracker_service import TrackerService
from repowatch.stores import (
    JobLock,
    KeyValueStore,
    NotificationQueue,
    SnapshotCache,
    create_store,
)

# ---------------------------------------------------------------------------
# DAO / stateless service singletons
# ---------------------------------------------------------------------------
_user_dao = UserDAO()
_tracked_repo_dao = TrackedRepoDAO()
_event_log_dao = EventLogDAO()

_event_log_service = EventLogService(_event_log_dao)

# ---------------------------------------------------------------------------
# Runtime components (initialised by init_runtime)
# ---------------------------------------------------------------------------
_settings: Settings | None = None
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_store: KeyValueStore | None = None
_github_client: GitHubGraphQLClient | None = None
_tracker_service: TrackerService | None = None
_check_runner: TrackerCheckRunner | None = None
_notification_runner: NotificationRunner | None = None
_queue: NotificationQueue | None = None


def init_runtime(
    settings: Settings | None = None,
    *,
    store: KeyValueStore | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    github_client: GitHubGraphQLClient | None = None,
    mailer: Mailer | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Build every runtime component from *settings*. Called once at startup.

    Keyword arguments replace the corresponding default component.
    """
    global _settings, _engine, _session_factory, _store, _github_client  # noqa: PLW0603
    global _tracker_service, _check_runner, _notification_runner, _queue  # noqa: PLW0603

    _settings = settings or Settings.from_env()
    if session_factory is None:
        _engine = create_engine(_settings.database_url)
        session_factory = create_session_factory(_engine)
    _session_factory = session_factory
    _store = store or create_store(_settings.redis_url)
    _github_client = github_client or GitHubGraphQLClient(
        _settings.github_token, max_rate_limit_wait=_settings.max_rate_limit_wait
    )

    cache = SnapshotCache(_store, ttl=_settings.snapshot_ttl)
    _queue = NotificationQueue(_store)
    _tracker_service = TrackerService(_tracked_repo_dao, _user_dao, _event_log_dao, cache)
    _check_runner = TrackerCheckRunner(
        _tracker_service,
        _event_log_service,
        cache,
        _queue,
        JobLock(_store, ttl=_settings.lock_ttl),
        lookback=timedelta(minutes=_settings.lookback_minutes),
        max_error_count=_settings.max_error_count,
        batch_size=_settings.batch_size,
        batch_delay=_settings.batch_delay,
    )
    _notification_runner = NotificationRunner(
        _queue,
        EmailNotificationSender(mailer or Mailer()),
        _event_log_service,
        JobLock(_store, ttl=_settings.lock_ttl),
        batch_size=_settings.notify_batch_size,
        delay=_settings.notify_delay,
    )
    return _session_factory


async def shutdown_runtime() -> None:
    """Close the GitHub client and store, and dispose the engine."""
    global _engine, _github_client, _store  # noqa: PLW0603
    if _github_client is not None:
        await _github_client.close()
        _github_client = None
    if _store is not None:
        await _store.close()
        _store = None
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def _require(component: object, name: str) -> object:
    if component is None:
        raise RuntimeError(f"call init_runtime() before using {name}")
    return component


def get_settings() -> Settings:
    return _settings or Settings.from_env()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return _require(_session_factory, "the session factory")  # type: ignore[return-value]


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a per-request session with automatic commit/rollback."""
    async with get_session_factory()() as session:
        async with session.begin():
            yield session


# ---------------------------------------------------------------------------
# Component getters (for Depends())
# ---------------------------------------------------------------------------


def get_github_client() -> GitHubGraphQLClient:
    return _require(_github_client, "the GitHub client")  # type: ignore[return-value]


def get_event_log_service() -> EventLogService:
    return _event_log_service


def get_tracker_service() -> TrackerService:
    return _require(_tracker_service, "the tracker service")  # type: ignore[return-value]


def get_check_runner() -> TrackerCheckRunner:
    return _require(_check_runner, "the check runner")  # type: ignore[return-value]


def get_notification_runner() -> NotificationRunner:
    return _require(_notification_runner, "the notification runner")  # type: ignore[return-value]


def get_queue() -> NotificationQueue:
    return _require(_queue, "the notification queue")  # type: ignore[return-value]
