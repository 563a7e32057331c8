"""Scheduler-trigger endpoints: one check cycle, one notification drain."""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repowatch.api.deps import (
    get_check_runner,
    get_github_client,
    get_notification_runner,
    get_session_factory,
)
from repowatch.api.schemas.cron import CheckTrackersResponse, SendEmailResponse
from repowatch.api.security import verify_cron_secret
from repowatch.engines.activity_tracker.github_client import GitHubGraphQLClient
from repowatch.engines.activity_tracker.runner import TrackerCheckRunner
from repowatch.engines.notification.runner import NotificationRunner

log = structlog.get_logger("repowatch.api")

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


def _failure(started: float, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": str(exc) or type(exc).__name__,
            "duration_ms": int((time.monotonic() - started) * 1000),
        },
    )


@router.get("/check-trackers", response_model=CheckTrackersResponse)
async def check_trackers(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    runner: TrackerCheckRunner = Depends(get_check_runner),
    client: GitHubGraphQLClient = Depends(get_github_client),
) -> CheckTrackersResponse | JSONResponse:
    started = time.monotonic()
    try:
        report = await runner.run(factory, client)
    except Exception as exc:
        log.error("cron.check_trackers_failed", error=str(exc), exc_info=True)
        return _failure(started, exc)
    return CheckTrackersResponse.from_report(report)


@router.get("/send-email", response_model=SendEmailResponse)
async def send_email(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    runner: NotificationRunner = Depends(get_notification_runner),
) -> SendEmailResponse | JSONResponse:
    started = time.monotonic()
    try:
        report = await runner.run(factory)
    except Exception as exc:
        log.error("cron.send_email_failed", error=str(exc), exc_info=True)
        return _failure(started, exc)
    return SendEmailResponse.from_report(report)
