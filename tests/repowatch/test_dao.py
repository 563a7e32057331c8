"""Tests for TrackedRepoDAO and EventLogDAO (PostgreSQL unless noted)."""

import re
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.dialects import postgresql

from repowatch.dao.base import InvalidCursorError
from repowatch.dao.event_log_dao import EventLogDAO
from repowatch.dao.tracked_repo_dao import TrackedRepoDAO
from repowatch.dao.user_dao import UserDAO


@pytest.fixture
def tracker_dao():
    return TrackedRepoDAO()


@pytest.fixture
def log_dao():
    return EventLogDAO()


@pytest_asyncio.fixture
async def user(session):
    return await UserDAO().create(session, email="dev@example.com", name="Dev")


@pytest_asyncio.fixture
async def tracker(tracker_dao, session, user):
    return await tracker_dao.create(session, **_tracker_values(user.id))


def _tracker_values(user_id, full_name="octo/widgets", **overrides) -> dict:
    owner, name = full_name.split("/")
    values = {
        "user_id": user_id,
        "repo_owner": owner,
        "repo_name": name,
        "repo_full_name": full_name,
        "repo_url": f"https://github.com/{full_name}",
        "tracked_events": ["new_issue", "pr_merged_to_branch:develop"],
    }
    values.update(overrides)
    return values


def _entry(tracker_id, signature="a" * 64, **overrides) -> dict:
    values = {
        "tracked_repo_id": tracker_id,
        "event_type": "new_issue",
        "event_data": {"title": "new issue #9: Crash", "author": "erin"},
        "event_signature": signature,
    }
    values.update(overrides)
    return values


# ── tracked repos ─────────────────────────────────────────────────────────


class TestTrackedRepoDAO:
    @pytest.mark.asyncio
    async def test_create_defaults(self, tracker):
        assert tracker.is_active is True
        assert tracker.is_paused is False
        assert tracker.error_count == 0
        assert tracker.last_activity_signature is None
        assert tracker.tracked_events == ["new_issue", "pr_merged_to_branch:develop"]

    @pytest.mark.asyncio
    async def test_get_by_user(self, tracker_dao, session, tracker, user):
        found = await tracker_dao.get_by_user(session, user.id)
        assert found.id == tracker.id

    @pytest.mark.asyncio
    async def test_list_active_skips_inactive(self, tracker_dao, session, tracker):
        other_user = await UserDAO().create(session, email="ops@example.com")
        inactive = await tracker_dao.create(
            session, **_tracker_values(other_user.id, "octo/gears", is_active=False)
        )

        active = await tracker_dao.list_active(session)

        ids = [t.id for t in active]
        assert tracker.id in ids
        assert inactive.id not in ids

    @pytest.mark.asyncio
    async def test_count_by_repo(self, tracker_dao, session, tracker):
        other_user = await UserDAO().create(session, email="ops@example.com")
        await tracker_dao.create(session, **_tracker_values(other_user.id))

        assert await tracker_dao.count_by_repo(session, "octo/widgets") == 2
        assert await tracker_dao.count_by_repo(session, "octo/gears") == 0

    @pytest.mark.asyncio
    async def test_record_success_stores_signature(self, tracker_dao, session, tracker):
        await tracker_dao.update(session, tracker.id, error_count=4, last_error="timeout")

        await tracker_dao.record_success(session, tracker.id, signature="f" * 64)
        await session.refresh(tracker)

        assert tracker.last_activity_signature == "f" * 64
        assert tracker.error_count == 0
        assert tracker.last_error is None

    @pytest.mark.asyncio
    async def test_record_success_keeps_signature(self, tracker_dao, session, tracker):
        await tracker_dao.record_success(session, tracker.id, signature="f" * 64)
        await tracker_dao.record_success(session, tracker.id)
        await session.refresh(tracker)
        assert tracker.last_activity_signature == "f" * 64

    @pytest.mark.asyncio
    async def test_record_failure_below_threshold(self, tracker_dao, session, tracker):
        await tracker_dao.update(session, tracker.id, error_count=8)

        updated = await tracker_dao.record_failure(
            session, tracker.id, error="github api error: 502", max_error_count=10
        )

        assert updated.error_count == 9
        assert updated.is_active is True
        assert updated.last_error == "github api error: 502"

    @pytest.mark.asyncio
    async def test_record_failure_deactivates_at_threshold(self, tracker_dao, session, tracker):
        await tracker_dao.update(session, tracker.id, error_count=9)

        updated = await tracker_dao.record_failure(
            session, tracker.id, error="x" * 2000, max_error_count=10
        )

        assert updated.error_count == 10
        assert updated.is_active is False
        assert len(updated.last_error) == 500

    @pytest.mark.asyncio
    async def test_record_failure_missing_tracker(self, tracker_dao, session):
        assert (
            await tracker_dao.record_failure(
                session, uuid.uuid4(), error="boom", max_error_count=10
            )
            is None
        )


# ── events log ────────────────────────────────────────────────────────────


class TestRecordFailureStatement:
    """The deactivation rule is evaluated in SQL; checked here without a database."""

    @staticmethod
    async def _statement(**kw):
        session = AsyncMock()
        row = object()
        session.execute.return_value = MagicMock(**{"scalars.return_value.first.return_value": row})
        result = await TrackedRepoDAO().record_failure(session, uuid.uuid4(), **kw)
        assert result is row
        stmt = session.execute.await_args.args[0]
        return stmt.compile(dialect=postgresql.dialect())

    @pytest.mark.asyncio
    async def test_increments_in_sql(self):
        compiled = await self._statement(error="boom", max_error_count=10)
        sql = str(compiled)
        assert re.search(r"SET error_count=\(?tracked_repos\.error_count \+ %\(\w+\)s", sql)
        assert "RETURNING" in sql

    @pytest.mark.asyncio
    async def test_deactivates_when_incremented_count_reaches_threshold(self):
        compiled = await self._statement(error="boom", max_error_count=10)
        match = re.search(
            r"is_active=\(*tracked_repos\.error_count \+ %\((\w+)\)s\)? < %\((\w+)\)s",
            str(compiled),
        )
        assert match is not None
        step, threshold = match.groups()
        assert compiled.params[step] == 1
        assert compiled.params[threshold] == 10

    @pytest.mark.asyncio
    async def test_truncates_error(self):
        compiled = await self._statement(error="x" * 2000, max_error_count=10)
        assert compiled.params["last_error"] == "x" * 500


class TestEventLogDAO:
    @pytest.mark.asyncio
    async def test_insert_if_absent_deduplicates(self, log_dao, session, tracker):
        assert await log_dao.insert_if_absent(session, **_entry(tracker.id)) is True
        assert await log_dao.insert_if_absent(session, **_entry(tracker.id)) is False
        assert await log_dao.count_for_tracker(session, tracker.id) == 1

    @pytest.mark.asyncio
    async def test_same_signature_for_other_tracker(self, tracker_dao, log_dao, session, tracker):
        other_user = await UserDAO().create(session, email="ops@example.com")
        other = await tracker_dao.create(session, **_tracker_values(other_user.id))

        await log_dao.insert_if_absent(session, **_entry(tracker.id))
        assert await log_dao.insert_if_absent(session, **_entry(other.id)) is True

    @pytest.mark.asyncio
    async def test_exists_signature(self, log_dao, session, tracker):
        await log_dao.insert_if_absent(session, **_entry(tracker.id))
        assert await log_dao.exists_signature(session, tracker.id, "a" * 64)
        assert not await log_dao.exists_signature(session, tracker.id, "b" * 64)

    @pytest.mark.asyncio
    async def test_mark_notified(self, log_dao, session, tracker):
        await log_dao.insert_if_absent(session, **_entry(tracker.id, "a" * 64))
        await log_dao.insert_if_absent(session, **_entry(tracker.id, "b" * 64))
        await log_dao.insert_if_absent(session, **_entry(tracker.id, "c" * 64))

        updated = await log_dao.mark_notified(session, tracker.id, ["a" * 64, "c" * 64])

        assert updated == 2
        page = await log_dao.list_paginated(session, tracker.id)
        flags = {e.event_signature: e.notification_sent for e in page.data}
        assert flags == {"a" * 64: True, "b" * 64: False, "c" * 64: True}
        assert all(e.notified_at is not None for e in page.data if e.notification_sent)

    @pytest.mark.asyncio
    async def test_mark_notified_empty(self, log_dao, session, tracker):
        assert await log_dao.mark_notified(session, tracker.id, []) == 0

    @pytest.mark.asyncio
    async def test_pagination(self, log_dao, session, tracker):
        for i in range(5):
            await log_dao.insert_if_absent(session, **_entry(tracker.id, f"{i}" * 64))

        first = await log_dao.list_paginated(session, tracker.id, page_size=3)
        assert len(first.data) == 3
        assert first.has_more is True

        second = await log_dao.list_paginated(
            session, tracker.id, cursor=first.next_cursor, page_size=3
        )
        assert len(second.data) == 2
        assert second.has_more is False
        seen = {e.id for e in first.data} | {e.id for e in second.data}
        assert len(seen) == 5

    @pytest.mark.asyncio
    async def test_tampered_cursor(self, log_dao, session, tracker):
        with pytest.raises(InvalidCursorError):
            await log_dao.list_paginated(session, tracker.id, cursor="bm90LWEtY3Vyc29y")

    @pytest.mark.asyncio
    async def test_delete_tracker_cascades(self, tracker_dao, log_dao, session, tracker):
        await log_dao.insert_if_absent(session, **_entry(tracker.id))
        await tracker_dao.delete(session, tracker.id)
        assert await log_dao.count_for_tracker(session, tracker.id) == 0
