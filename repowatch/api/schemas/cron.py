"""Scheduler-trigger response schemas."""

from __future__ import annotations

import uuid

from pydantic import BaseModel

from repowatch.engines.activity_tracker.models import RunReport
from repowatch.engines.notification.runner import DrainReport


class TrackerResult(BaseModel):
    tracker_id: uuid.UUID
    repo_full_name: str
    events_detected: int
    error: str | None = None


class CheckTrackersResponse(BaseModel):
    success: bool = True
    skipped: bool = False
    message: str
    processed: int = 0
    succeeded: int = 0
    errored: int = 0
    total_events: int = 0
    duration_ms: int
    results: list[TrackerResult] = []

    @classmethod
    def from_report(cls, report: RunReport) -> CheckTrackersResponse:
        return cls(
            skipped=report.skipped,
            message=report.message,
            processed=report.processed,
            succeeded=report.succeeded,
            errored=report.errored,
            total_events=report.total_events,
            duration_ms=report.duration_ms,
            results=[
                TrackerResult(
                    tracker_id=r.tracker_id,
                    repo_full_name=r.repo_full_name,
                    events_detected=r.events_detected,
                    error=r.error,
                )
                for r in report.results
            ],
        )


class SendEmailResponse(BaseModel):
    success: bool = True
    skipped: bool = False
    processed: int
    errors: int
    duration_ms: int

    @classmethod
    def from_report(cls, report: DrainReport) -> SendEmailResponse:
        return cls(
            skipped=report.skipped,
            processed=report.processed,
            errors=report.errors,
            duration_ms=report.duration_ms,
        )
