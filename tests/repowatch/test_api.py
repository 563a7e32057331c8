"""Tests for the API layer.

Runtime components are mocked through ``app.dependency_overrides``;
ASGITransport does not run the lifespan, so nothing touches a database.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from repowatch.api import create_app, deps
from repowatch.core.config import Settings
from repowatch.engines.activity_tracker.github_client import GitHubAPIError
from repowatch.engines.activity_tracker.models import ProcessResult, RunReport
from repowatch.engines.notification.runner import DrainReport
from repowatch.models.event_log import EventLog
from repowatch.models.tracked_repo import TrackedRepo
from repowatch.services import ConflictError, NotFoundError, ValidationError

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
CRON_SECRET = "cron-secret-for-tests"
AUTH = {"Authorization": f"Bearer {CRON_SECRET}"}


def _tracker(tracker_id: uuid.UUID | None = None, **overrides) -> TrackedRepo:
    values = dict(
        id=tracker_id or uuid.uuid4(),
        user_id=uuid.uuid4(),
        repo_owner="octo",
        repo_name="widgets",
        repo_full_name="octo/widgets",
        repo_url="https://github.com/octo/widgets",
        tracked_events=["new_issue"],
        last_activity_signature="a" * 64,
        last_checked_at=NOW,
        is_active=True,
        is_paused=False,
        error_count=0,
        last_error=None,
        tracked_since=NOW,
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return TrackedRepo(**values)


def _event_log(tracker_id: uuid.UUID) -> EventLog:
    return EventLog(
        id=uuid.uuid4(),
        tracked_repo_id=tracker_id,
        event_type="new_issue",
        event_data={"title": "new issue #9: Crash"},
        event_signature="b" * 64,
        detected_at=NOW,
        notification_sent=False,
        notified_at=None,
        created_at=NOW,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app():
    application = create_app()

    mock_session = AsyncMock()

    async def _mock_session():
        yield mock_session

    application.dependency_overrides[deps.get_session] = _mock_session
    application.dependency_overrides[deps.get_session_factory] = lambda: MagicMock()
    application.dependency_overrides[deps.get_github_client] = lambda: MagicMock()
    application.dependency_overrides[deps.get_settings] = lambda: Settings(
        cron_secret=CRON_SECRET
    )
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def _override_check_runner(app, **kwargs) -> MagicMock:
    runner = MagicMock()
    runner.run = AsyncMock(**kwargs)
    app.dependency_overrides[deps.get_check_runner] = lambda: runner
    return runner


def _override_tracker_service(app) -> AsyncMock:
    svc = AsyncMock()
    app.dependency_overrides[deps.get_tracker_service] = lambda: svc
    return svc


# ---------------------------------------------------------------------------
# Ops
# ---------------------------------------------------------------------------


class TestOps:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        rid = str(uuid.uuid4())
        resp = await client.get("/health", headers={"X-Request-ID": rid})
        assert resp.headers["X-Request-ID"] == rid

    @pytest.mark.asyncio
    async def test_invalid_request_id_is_replaced(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "not-a-uuid"})
        assert uuid.UUID(resp.headers["X-Request-ID"])


# ---------------------------------------------------------------------------
# Cron
# ---------------------------------------------------------------------------


class TestCronAuth:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer wrong"}, {"Authorization": CRON_SECRET}],
    )
    async def test_rejects_bad_credentials(self, app, client, headers):
        runner = _override_check_runner(app)
        resp = await client.get("/cron/check-trackers", headers=headers)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}
        runner.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_when_secret_unconfigured(self, app, client):
        app.dependency_overrides[deps.get_settings] = lambda: Settings()
        _override_check_runner(app)
        resp = await client.get("/cron/check-trackers", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401


class TestCheckTrackers:
    @pytest.mark.asyncio
    async def test_reports_run(self, app, client):
        ok, failed = uuid.uuid4(), uuid.uuid4()
        _override_check_runner(
            app,
            return_value=RunReport(
                message="Tracker check completed",
                duration_ms=1234,
                results=[
                    ProcessResult(tracker_id=ok, repo_full_name="octo/widgets", events_detected=2),
                    ProcessResult(tracker_id=failed, repo_full_name="octo/gone", error="boom"),
                ],
            ),
        )

        resp = await client.get("/cron/check-trackers", headers=AUTH)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["skipped"] is False
        assert data["processed"] == 2
        assert data["succeeded"] == 1
        assert data["errored"] == 1
        assert data["total_events"] == 2
        assert data["duration_ms"] == 1234
        assert data["results"][1] == {
            "tracker_id": str(failed),
            "repo_full_name": "octo/gone",
            "events_detected": 0,
            "error": "boom",
        }

    @pytest.mark.asyncio
    async def test_skipped_run(self, app, client):
        _override_check_runner(
            app, return_value=RunReport(skipped=True, message="Job already running")
        )

        resp = await client.get("/cron/check-trackers", headers=AUTH)

        assert resp.status_code == 200
        assert resp.json()["skipped"] is True
        assert resp.json()["message"] == "Job already running"

    @pytest.mark.asyncio
    async def test_runner_failure_is_500(self, app, client):
        _override_check_runner(app, side_effect=RuntimeError("database unreachable"))

        resp = await client.get("/cron/check-trackers", headers=AUTH)

        assert resp.status_code == 500
        data = resp.json()
        assert data["success"] is False
        assert data["error"] == "database unreachable"
        assert "duration_ms" in data


class TestSendEmail:
    @pytest.mark.asyncio
    async def test_reports_drain(self, app, client):
        runner = MagicMock()
        runner.run = AsyncMock(return_value=DrainReport(processed=3, errors=1, duration_ms=40))
        app.dependency_overrides[deps.get_notification_runner] = lambda: runner

        resp = await client.get("/cron/send-email", headers=AUTH)

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "skipped": False,
            "processed": 3,
            "errors": 1,
            "duration_ms": 40,
        }

    @pytest.mark.asyncio
    async def test_requires_secret(self, app, client):
        app.dependency_overrides[deps.get_notification_runner] = lambda: MagicMock()
        resp = await client.get("/cron/send-email")
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Trackers
# ---------------------------------------------------------------------------


class TestTrackersRouter:
    @pytest.mark.asyncio
    async def test_create(self, app, client):
        tracker = _tracker()
        svc = _override_tracker_service(app)
        svc.create = AsyncMock(return_value=tracker)

        resp = await client.post(
            "/api/v1/trackers/",
            json={
                "user_id": str(tracker.user_id),
                "repo_url": "https://github.com/octo/widgets",
                "tracked_events": ["new_issue"],
            },
        )

        assert resp.status_code == 201
        assert resp.json()["id"] == str(tracker.id)
        assert resp.json()["repo_full_name"] == "octo/widgets"
        kwargs = svc.create.await_args.kwargs
        assert kwargs["user_id"] == tracker.user_id
        assert kwargs["tracked_events"] == ["new_issue"]

    @pytest.mark.asyncio
    async def test_create_requires_events(self, app, client):
        _override_tracker_service(app)
        resp = await client.post(
            "/api/v1/trackers/",
            json={"user_id": str(uuid.uuid4()), "repo_url": "octo/widgets", "tracked_events": []},
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (NotFoundError("repository not found or unable to access"), 404),
            (ConflictError("you already have a tracker for octo/gears. delete it first."), 409),
            (ValidationError("cannot track private repositories"), 422),
            (GitHubAPIError("github api error: 503"), 502),
        ],
    )
    async def test_create_error_mapping(self, app, client, error, status):
        svc = _override_tracker_service(app)
        svc.create = AsyncMock(side_effect=error)

        resp = await client.post(
            "/api/v1/trackers/",
            json={
                "user_id": str(uuid.uuid4()),
                "repo_url": "octo/widgets",
                "tracked_events": ["new_pr"],
            },
        )

        assert resp.status_code == status
        assert str(error) in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_get_status(self, app, client):
        tracker = _tracker(error_count=3, last_error="timeout")
        svc = _override_tracker_service(app)
        svc.get_status = AsyncMock(return_value={"tracker": tracker, "total_events": 12})

        resp = await client.get(f"/api/v1/trackers/{tracker.id}")

        assert resp.status_code == 200
        data = resp.json()
        assert data["total_events"] == 12
        assert data["error_count"] == 3
        assert data["last_error"] == "timeout"

    @pytest.mark.asyncio
    async def test_get_not_found(self, app, client):
        svc = _override_tracker_service(app)
        svc.get_status = AsyncMock(side_effect=NotFoundError("tracker not found"))
        resp = await client.get(f"/api/v1/trackers/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "tracker not found"

    @pytest.mark.asyncio
    async def test_list_events(self, app, client):
        tracker = _tracker()
        svc = _override_tracker_service(app)
        svc.get = AsyncMock(return_value=tracker)
        log_svc = AsyncMock()
        log_svc.list_for_tracker = AsyncMock(
            return_value={
                "data": [_event_log(tracker.id)],
                "next_cursor": "abc",
                "has_more": True,
                "total": 5,
            }
        )
        app.dependency_overrides[deps.get_event_log_service] = lambda: log_svc

        resp = await client.get(f"/api/v1/trackers/{tracker.id}/events?page_size=1")

        assert resp.status_code == 200
        data = resp.json()
        assert len(data["data"]) == 1
        assert data["data"][0]["event_type"] == "new_issue"
        assert data["meta"] == {"next_cursor": "abc", "has_more": True, "total": 5}
        assert log_svc.list_for_tracker.await_args.kwargs == {"cursor": None, "page_size": 1}

    @pytest.mark.asyncio
    async def test_list_events_unknown_tracker(self, app, client):
        svc = _override_tracker_service(app)
        svc.get = AsyncMock(side_effect=NotFoundError("tracker not found"))
        log_svc = AsyncMock()
        app.dependency_overrides[deps.get_event_log_service] = lambda: log_svc

        resp = await client.get(f"/api/v1/trackers/{uuid.uuid4()}/events")

        assert resp.status_code == 404
        log_svc.list_for_tracker.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("action", "field", "value"),
        [("pause", "is_paused", True), ("resume", "is_paused", False)],
    )
    async def test_pause_resume(self, app, client, action, field, value):
        tracker = _tracker(**{field: value})
        svc = _override_tracker_service(app)
        setattr(svc, action, AsyncMock(return_value=tracker))

        resp = await client.post(f"/api/v1/trackers/{tracker.id}/{action}")

        assert resp.status_code == 200
        assert resp.json()[field] is value

    @pytest.mark.asyncio
    async def test_reactivate(self, app, client):
        tracker = _tracker()
        svc = _override_tracker_service(app)
        svc.reactivate = AsyncMock(return_value=tracker)

        resp = await client.post(f"/api/v1/trackers/{tracker.id}/reactivate")

        assert resp.status_code == 200
        assert resp.json()["is_active"] is True
        assert resp.json()["error_count"] == 0

    @pytest.mark.asyncio
    async def test_delete(self, app, client):
        svc = _override_tracker_service(app)
        svc.delete = AsyncMock(return_value=None)
        tid = uuid.uuid4()

        resp = await client.delete(f"/api/v1/trackers/{tid}")

        assert resp.status_code == 204
        assert svc.delete.await_args.args[1] == tid

    @pytest.mark.asyncio
    async def test_invalid_tracker_id(self, app, client):
        _override_tracker_service(app)
        resp = await client.get("/api/v1/trackers/not-a-uuid")
        assert resp.status_code == 422
