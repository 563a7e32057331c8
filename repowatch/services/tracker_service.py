"""TrackerService — tracker lifecycle: create, status, pause/resume, delete."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from repowatch.core.github import parse_repo_url
from repowatch.dao.event_log_dao import EventLogDAO
from repowatch.dao.tracked_repo_dao import TrackedRepoDAO
from repowatch.dao.user_dao import UserDAO
from repowatch.engines.activity_tracker.github_client import RepositoryNotFoundError
from repowatch.engines.activity_tracker.models import (
    PARAMETERISED_KINDS,
    SIMPLE_KINDS,
    RepoVerification,
    Snapshot,
    parse_subscription,
)
from repowatch.engines.activity_tracker.signature import activity_signature
from repowatch.models.tracked_repo import TrackedRepo
from repowatch.models.user import User
from repowatch.services import ConflictError, NotFoundError, ValidationError
from repowatch.stores.snapshot_cache import SnapshotCache

log = structlog.get_logger("repowatch.services")

MAX_TRACKED_EVENTS = 4


class RepositoryDataSource(Protocol):
    async def verify_repository(self, owner: str, name: str) -> RepoVerification: ...

    async def fetch_snapshot(self, owner: str, name: str) -> Snapshot: ...


def validate_tracked_events(tracked_events: list[str]) -> list[str]:
    """Return the de-duplicated subscription list or raise :class:`ValidationError`."""
    events = list(dict.fromkeys(e.strip() for e in tracked_events if e and e.strip()))
    if not events:
        raise ValidationError("please select at least one event to track")
    if len(events) > MAX_TRACKED_EVENTS:
        raise ValidationError(f"maximum {MAX_TRACKED_EVENTS} events allowed")
    for subscription in events:
        kind, param = parse_subscription(subscription)
        if kind in PARAMETERISED_KINDS:
            if not param:
                raise ValidationError(f"event '{kind}' requires a parameter, e.g. '{kind}:value'")
        elif kind in SIMPLE_KINDS:
            if param is not None:
                raise ValidationError(f"event '{kind}' does not take a parameter")
        else:
            raise ValidationError(f"unknown event type '{kind}'")
    return events


class TrackerService:
    """Stateless service for tracker management."""

    def __init__(
        self,
        tracked_repo_dao: TrackedRepoDAO,
        user_dao: UserDAO,
        event_log_dao: EventLogDAO,
        snapshot_cache: SnapshotCache | None = None,
    ) -> None:
        self._tracker_dao = tracked_repo_dao
        self._user_dao = user_dao
        self._event_log_dao = event_log_dao
        self._cache = snapshot_cache

    async def get(self, session: AsyncSession, tracker_id: uuid.UUID) -> TrackedRepo:
        """Raises :class:`NotFoundError` if the tracker does not exist."""
        tracker = await self._tracker_dao.get_by_id(session, tracker_id)
        if tracker is None:
            raise NotFoundError("tracker not found")
        return tracker

    async def get_status(self, session: AsyncSession, tracker_id: uuid.UUID) -> dict:
        """Return the tracker together with its total logged events."""
        tracker = await self.get(session, tracker_id)
        total_events = await self._event_log_dao.count_for_tracker(session, tracker.id)
        return {
            "tracker": tracker,
            "total_events": total_events,
        }

    async def create(
        self,
        session: AsyncSession,
        data_source: RepositoryDataSource,
        *,
        user_id: uuid.UUID,
        repo_url: str,
        tracked_events: list[str],
    ) -> TrackedRepo:
        """Verify the repository and create a tracker seeded with its signature.

        Seeding the signature means the first scheduled poll compares against
        the state at subscription time instead of reporting old activity.

        Raises:
            ValidationError: bad URL, bad subscriptions, private or archived repo.
            ConflictError: the user already tracks a repository.
            NotFoundError: unknown user, or the repository does not exist.
        """
        try:
            owner, name = parse_repo_url(repo_url)
        except ValueError as exc:
            raise ValidationError("invalid github repository url") from exc
        events = validate_tracked_events(tracked_events)

        user = await self._user_dao.get_by_id(session, user_id)
        if user is None:
            raise NotFoundError("user not found")

        existing = await self._tracker_dao.get_by_user(session, user_id)
        if existing is not None:
            raise ConflictError(
                f"you already have a tracker for {existing.repo_full_name}. delete it first."
            )

        verification = await data_source.verify_repository(owner, name)
        if not verification.exists:
            raise NotFoundError("repository not found or unable to access")
        if verification.is_private:
            raise ValidationError("cannot track private repositories")
        if verification.is_archived:
            raise ValidationError("cannot track archived repositories")

        try:
            snapshot = await data_source.fetch_snapshot(owner, name)
        except RepositoryNotFoundError as exc:
            raise NotFoundError("repository not found or unable to access") from exc

        full_name = verification.name_with_owner or f"{owner}/{name}"
        owner, name = full_name.split("/", 1)
        tracker = await self._tracker_dao.create(
            session,
            user_id=user_id,
            repo_owner=owner,
            repo_name=name,
            repo_full_name=full_name,
            repo_url=repo_url,
            tracked_events=events,
            last_activity_signature=activity_signature(snapshot),
            last_checked_at=datetime.now(timezone.utc),
        )
        if self._cache is not None:
            await self._cache.set(full_name, snapshot)
        log.info("tracker.created", tracker_id=str(tracker.id), repo=full_name, events=events)
        return tracker

    # ── check-cycle bookkeeping ───────────────────────────────────────────

    async def list_active(self, session: AsyncSession) -> list[TrackedRepo]:
        return await self._tracker_dao.list_active(session)

    async def get_by_id(self, session: AsyncSession, tracker_id: uuid.UUID) -> TrackedRepo | None:
        """Return raw TrackedRepo model or None."""
        return await self._tracker_dao.get_by_id(session, tracker_id)

    async def get_user(self, session: AsyncSession, user_id: uuid.UUID) -> User | None:
        return await self._user_dao.get_by_id(session, user_id)

    async def record_success(
        self, session: AsyncSession, tracker_id: uuid.UUID, *, signature: str | None = None
    ) -> None:
        await self._tracker_dao.record_success(session, tracker_id, signature=signature)

    async def record_failure(
        self,
        session: AsyncSession,
        tracker_id: uuid.UUID,
        *,
        error: str,
        max_error_count: int,
    ) -> TrackedRepo | None:
        """Count a failed check; the tracker is deactivated at *max_error_count*."""
        return await self._tracker_dao.record_failure(
            session, tracker_id, error=error, max_error_count=max_error_count
        )

    # ── state transitions ─────────────────────────────────────────────────

    async def pause(self, session: AsyncSession, tracker_id: uuid.UUID) -> TrackedRepo:
        return await self._set(session, tracker_id, is_paused=True)

    async def resume(self, session: AsyncSession, tracker_id: uuid.UUID) -> TrackedRepo:
        return await self._set(session, tracker_id, is_paused=False)

    async def reactivate(self, session: AsyncSession, tracker_id: uuid.UUID) -> TrackedRepo:
        """Re-enable a tracker that was deactivated by repeated failures."""
        return await self._set(
            session, tracker_id, is_active=True, error_count=0, last_error=None
        )

    async def delete(self, session: AsyncSession, tracker_id: uuid.UUID) -> None:
        """Delete the tracker; its log entries go with it (FK cascade).

        The repository's cached snapshot is dropped once no other tracker
        watches it.
        """
        tracker = await self.get(session, tracker_id)
        full_name = tracker.repo_full_name
        await self._tracker_dao.delete(session, tracker.id)
        if self._cache is not None and await self._tracker_dao.count_by_repo(session, full_name) == 0:
            await self._cache.clear(full_name)
        log.info("tracker.deleted", tracker_id=str(tracker_id), repo=full_name)

    async def _set(self, session: AsyncSession, tracker_id: uuid.UUID, **values) -> TrackedRepo:
        tracker = await self._tracker_dao.update(session, tracker_id, **values)
        if tracker is None:
            raise NotFoundError("tracker not found")
        return tracker
