"""Tests for TrackerService."""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from repowatch.dao.event_log_dao import EventLogDAO
from repowatch.dao.tracked_repo_dao import TrackedRepoDAO
from repowatch.dao.user_dao import UserDAO
from repowatch.engines.activity_tracker.github_client import RepositoryNotFoundError
from repowatch.engines.activity_tracker.models import RepoVerification, Snapshot
from repowatch.engines.activity_tracker.signature import activity_signature
from repowatch.models.tracked_repo import TrackedRepo
from repowatch.models.user import User
from repowatch.services import ConflictError, NotFoundError, ValidationError
from repowatch.services.tracker_service import TrackerService, validate_tracked_events
from repowatch.stores.snapshot_cache import SnapshotCache

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
SNAPSHOT = Snapshot(
    name_with_owner="octo/widgets", url="https://github.com/octo/widgets", stargazer_count=42
)


def _make_tracker(**overrides) -> TrackedRepo:
    defaults = {
        "id": uuid.uuid4(),
        "user_id": uuid.uuid4(),
        "repo_owner": "octo",
        "repo_name": "widgets",
        "repo_full_name": "octo/widgets",
        "repo_url": "https://github.com/octo/widgets",
        "tracked_events": ["new_issue"],
        "last_activity_signature": None,
        "last_checked_at": NOW,
        "is_active": True,
        "is_paused": False,
        "error_count": 0,
        "last_error": None,
        "tracked_since": NOW,
        "created_at": NOW,
        "updated_at": NOW,
    }
    defaults.update(overrides)
    return TrackedRepo(**defaults)


def _make_user(**overrides) -> User:
    defaults = {"id": uuid.uuid4(), "email": "dev@example.com", "name": "Dev"}
    defaults.update(overrides)
    return User(**defaults)


def _make_service(
    cache=None,
) -> tuple[TrackerService, TrackedRepoDAO, UserDAO, EventLogDAO]:
    tracker_dao = TrackedRepoDAO()
    user_dao = UserDAO()
    event_dao = EventLogDAO()
    service = TrackerService(tracker_dao, user_dao, event_dao, cache)
    return service, tracker_dao, user_dao, event_dao


def _make_source(verification=None, snapshot=SNAPSHOT) -> AsyncMock:
    source = AsyncMock()
    source.verify_repository = AsyncMock(
        return_value=verification or RepoVerification(exists=True, name_with_owner="octo/widgets")
    )
    source.fetch_snapshot = AsyncMock(return_value=snapshot)
    return source


async def _create(service, source, *, repo_url="octo/widgets", tracked_events=("new_pr",)):
    return await service.create(
        AsyncMock(),
        source,
        user_id=uuid.uuid4(),
        repo_url=repo_url,
        tracked_events=list(tracked_events),
    )


# ---------------------------------------------------------------------------
# validate_tracked_events
# ---------------------------------------------------------------------------


class TestValidateTrackedEvents:
    def test_accepts_and_deduplicates(self):
        events = validate_tracked_events(["new_issue", " new_issue ", "pr_merged_to_branch:dev"])
        assert events == ["new_issue", "pr_merged_to_branch:dev"]

    def test_rejects_empty(self):
        with pytest.raises(ValidationError, match="at least one"):
            validate_tracked_events(["", "  "])

    def test_rejects_more_than_four(self):
        with pytest.raises(ValidationError, match="maximum 4"):
            validate_tracked_events(
                ["new_pr", "new_issue", "new_fork", "new_branch", "new_release"]
            )

    def test_parameterised_kind_needs_parameter(self):
        with pytest.raises(ValidationError, match="requires a parameter"):
            validate_tracked_events(["new_issue_with_tag:"])

    def test_simple_kind_rejects_parameter(self):
        with pytest.raises(ValidationError, match="does not take a parameter"):
            validate_tracked_events(["new_pr:main"])

    def test_unknown_kind(self):
        with pytest.raises(ValidationError, match="unknown event type"):
            validate_tracked_events(["new_star"])

    def test_merge_to_main_alias_is_accepted(self):
        assert validate_tracked_events(["merge_to_main"]) == ["merge_to_main"]


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_seeds_signature_and_cache(self, store):
        cache = SnapshotCache(store)
        service, tracker_dao, user_dao, _ = _make_service(cache)
        user = _make_user()
        user_dao.get_by_id = AsyncMock(return_value=user)
        tracker_dao.get_by_user = AsyncMock(return_value=None)
        tracker_dao.create = AsyncMock(side_effect=lambda _s, **kw: _make_tracker(**kw))
        source = _make_source()

        tracker = await service.create(
            AsyncMock(),
            source,
            user_id=user.id,
            repo_url="https://github.com/octo/widgets.git",
            tracked_events=["new_issue", "stars_milestone"],
        )

        kwargs = tracker_dao.create.await_args.kwargs
        assert kwargs["repo_owner"] == "octo"
        assert kwargs["repo_name"] == "widgets"
        assert kwargs["repo_full_name"] == "octo/widgets"
        assert kwargs["tracked_events"] == ["new_issue", "stars_milestone"]
        assert kwargs["last_activity_signature"] == activity_signature(SNAPSHOT)
        assert tracker.user_id == user.id
        source.verify_repository.assert_awaited_once_with("octo", "widgets")
        assert await cache.get("octo/widgets") == SNAPSHOT

    @pytest.mark.asyncio
    async def test_uses_canonical_name(self):
        service, tracker_dao, user_dao, _ = _make_service()
        user_dao.get_by_id = AsyncMock(return_value=_make_user())
        tracker_dao.get_by_user = AsyncMock(return_value=None)
        tracker_dao.create = AsyncMock(side_effect=lambda _s, **kw: _make_tracker(**kw))
        source = _make_source(RepoVerification(exists=True, name_with_owner="Octo/Widgets"))

        await _create(service, source)

        kwargs = tracker_dao.create.await_args.kwargs
        assert kwargs["repo_full_name"] == "Octo/Widgets"
        assert kwargs["repo_owner"] == "Octo"

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        service, *_ = _make_service()
        with pytest.raises(ValidationError, match="invalid github repository url"):
            await _create(service, _make_source(), repo_url="https://gitlab.com/octo/widgets")

    @pytest.mark.asyncio
    async def test_unknown_user(self):
        service, _, user_dao, _ = _make_service()
        user_dao.get_by_id = AsyncMock(return_value=None)
        with pytest.raises(NotFoundError, match="user not found"):
            await _create(service, _make_source())

    @pytest.mark.asyncio
    async def test_one_tracker_per_user(self):
        service, tracker_dao, user_dao, _ = _make_service()
        user_dao.get_by_id = AsyncMock(return_value=_make_user())
        tracker_dao.get_by_user = AsyncMock(
            return_value=_make_tracker(repo_full_name="octo/gears")
        )
        source = _make_source()

        with pytest.raises(ConflictError, match="octo/gears"):
            await _create(service, source)
        source.verify_repository.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("verification", "error", "match"),
        [
            (RepoVerification(exists=False), NotFoundError, "repository not found"),
            (RepoVerification(exists=True, is_private=True), ValidationError, "private"),
            (RepoVerification(exists=True, is_archived=True), ValidationError, "archived"),
        ],
    )
    async def test_rejects_unusable_repository(self, verification, error, match):
        service, tracker_dao, user_dao, _ = _make_service()
        user_dao.get_by_id = AsyncMock(return_value=_make_user())
        tracker_dao.get_by_user = AsyncMock(return_value=None)
        tracker_dao.create = AsyncMock()

        with pytest.raises(error, match=match):
            await _create(service, _make_source(verification))
        tracker_dao.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_repository_vanishes_before_snapshot(self):
        service, tracker_dao, user_dao, _ = _make_service()
        user_dao.get_by_id = AsyncMock(return_value=_make_user())
        tracker_dao.get_by_user = AsyncMock(return_value=None)
        source = _make_source()
        source.fetch_snapshot = AsyncMock(side_effect=RepositoryNotFoundError("octo", "widgets"))

        with pytest.raises(NotFoundError):
            await _create(service, source)


# ---------------------------------------------------------------------------
# status and state transitions
# ---------------------------------------------------------------------------


class TestStatus:
    @pytest.mark.asyncio
    async def test_get_status(self):
        tracker = _make_tracker()
        service, tracker_dao, _, event_dao = _make_service()
        tracker_dao.get_by_id = AsyncMock(return_value=tracker)
        event_dao.count_for_tracker = AsyncMock(return_value=7)

        result = await service.get_status(AsyncMock(), tracker.id)

        assert result["tracker"] is tracker
        assert result["total_events"] == 7

    @pytest.mark.asyncio
    async def test_get_not_found(self):
        service, tracker_dao, _, _ = _make_service()
        tracker_dao.get_by_id = AsyncMock(return_value=None)
        with pytest.raises(NotFoundError, match="tracker not found"):
            await service.get(AsyncMock(), uuid.uuid4())


class TestStateTransitions:
    @pytest.mark.asyncio
    async def test_pause_and_resume(self):
        service, tracker_dao, _, _ = _make_service()
        tracker_dao.update = AsyncMock(return_value=_make_tracker())
        tid = uuid.uuid4()
        session = AsyncMock()

        await service.pause(session, tid)
        tracker_dao.update.assert_awaited_with(session, tid, is_paused=True)
        await service.resume(session, tid)
        tracker_dao.update.assert_awaited_with(session, tid, is_paused=False)

    @pytest.mark.asyncio
    async def test_reactivate_resets_error_budget(self):
        service, tracker_dao, _, _ = _make_service()
        tracker_dao.update = AsyncMock(return_value=_make_tracker())
        tid = uuid.uuid4()
        session = AsyncMock()

        await service.reactivate(session, tid)

        tracker_dao.update.assert_awaited_once_with(
            session, tid, is_active=True, error_count=0, last_error=None
        )

    @pytest.mark.asyncio
    async def test_transition_on_missing_tracker(self):
        service, tracker_dao, _, _ = _make_service()
        tracker_dao.update = AsyncMock(return_value=None)
        with pytest.raises(NotFoundError):
            await service.pause(AsyncMock(), uuid.uuid4())


class TestDelete:
    @pytest.mark.asyncio
    async def test_last_watcher_clears_cache(self, store):
        cache = SnapshotCache(store)
        await cache.set("octo/widgets", SNAPSHOT)
        tracker = _make_tracker()
        service, tracker_dao, _, _ = _make_service(cache)
        tracker_dao.get_by_id = AsyncMock(return_value=tracker)
        tracker_dao.delete = AsyncMock()
        tracker_dao.count_by_repo = AsyncMock(return_value=0)

        await service.delete(AsyncMock(), tracker.id)

        tracker_dao.delete.assert_awaited_once()
        assert await cache.get("octo/widgets") is None

    @pytest.mark.asyncio
    async def test_shared_repository_keeps_cache(self, store):
        cache = SnapshotCache(store)
        await cache.set("octo/widgets", SNAPSHOT)
        tracker = _make_tracker()
        service, tracker_dao, _, _ = _make_service(cache)
        tracker_dao.get_by_id = AsyncMock(return_value=tracker)
        tracker_dao.delete = AsyncMock()
        tracker_dao.count_by_repo = AsyncMock(return_value=1)

        await service.delete(AsyncMock(), tracker.id)

        assert await cache.get("octo/widgets") == SNAPSHOT

    @pytest.mark.asyncio
    async def test_delete_not_found(self):
        service, tracker_dao, _, _ = _make_service()
        tracker_dao.get_by_id = AsyncMock(return_value=None)
        tracker_dao.delete = AsyncMock()
        with pytest.raises(NotFoundError):
            await service.delete(AsyncMock(), uuid.uuid4())
        tracker_dao.delete.assert_not_awaited()
