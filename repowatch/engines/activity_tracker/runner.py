"""TrackerCheckRunner — one lock-guarded check cycle over all active trackers."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repowatch.engines.activity_tracker.dedup import event_signature
from repowatch.engines.activity_tracker.detector import DEFAULT_LOOKBACK, EventDetector
from repowatch.engines.activity_tracker.models import (
    DetectedEvent,
    ProcessResult,
    RunReport,
    Snapshot,
)
from repowatch.engines.activity_tracker.signature import activity_signature, signatures_match
from repowatch.models.tracked_repo import TrackedRepo
from repowatch.services.event_log_service import EventLogService
from repowatch.services.tracker_service import TrackerService
from repowatch.stores.base import StoreError
from repowatch.stores.job_lock import JobLock
from repowatch.stores.notification_queue import JobEvent, NotificationJob, NotificationQueue
from repowatch.stores.snapshot_cache import SnapshotCache

log = structlog.get_logger("repowatch.engine")

LOCK_NAME = "check-trackers-job"


class SnapshotSource(Protocol):
    async def fetch_snapshot(self, owner: str, name: str) -> Snapshot: ...


class TrackerCheckRunner:
    """Orchestration layer: fetch → signature → detect → log → enqueue.

    Each tracker is processed in its own session and transaction, so a
    tracker's writes land together or not at all, and one failing tracker
    never affects the others in its batch.
    """

    def __init__(
        self,
        tracker_service: TrackerService,
        event_log_service: EventLogService,
        snapshot_cache: SnapshotCache,
        queue: NotificationQueue,
        lock: JobLock,
        *,
        lookback: timedelta = DEFAULT_LOOKBACK,
        max_error_count: int = 10,
        batch_size: int = 5,
        batch_delay: float = 2.0,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._tracker_service = tracker_service
        self._event_log_service = event_log_service
        self._cache = snapshot_cache
        self._queue = queue
        self._lock = lock
        self._lookback = lookback
        self._max_error_count = max_error_count
        self._batch_size = max(batch_size, 1)
        self._batch_delay = batch_delay
        self._now = now

    async def run(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        data_source: SnapshotSource,
    ) -> RunReport:
        """Run one check cycle unless another cycle holds the lock.

        Failing to load the tracker list propagates to the caller; every
        per-tracker failure is captured in the report instead.
        """
        started = time.monotonic()
        token = await self._lock.acquire(LOCK_NAME)
        if token is None:
            log.info("tracker_check.skipped", reason="lock held")
            return RunReport(
                skipped=True, message="Job already running", duration_ms=_elapsed_ms(started)
            )

        try:
            async with session_factory() as session:
                async with session.begin():
                    trackers = await self._tracker_service.list_active(session)
            targets = [(t.id, t.repo_full_name) for t in trackers]
            log.info("tracker_check.started", trackers=len(targets))

            results: list[ProcessResult] = []
            for start in range(0, len(targets), self._batch_size):
                batch = targets[start : start + self._batch_size]
                outcomes = await asyncio.gather(
                    *(self.check_one(session_factory, data_source, tid) for tid, _ in batch),
                    return_exceptions=True,
                )
                for (tid, full_name), outcome in zip(batch, outcomes):
                    if isinstance(outcome, Exception):
                        log.error("tracker.unhandled", tracker_id=str(tid), error=str(outcome))
                        results.append(
                            ProcessResult(tracker_id=tid, repo_full_name=full_name, error=str(outcome))
                        )
                    elif isinstance(outcome, BaseException):
                        raise outcome
                    else:
                        results.append(outcome)
                if start + self._batch_size < len(targets):
                    await asyncio.sleep(self._batch_delay)
        finally:
            await self._lock.release(LOCK_NAME, token)

        report = RunReport(
            message="Tracker check completed" if targets else "No active trackers to process",
            duration_ms=_elapsed_ms(started),
            results=results,
        )
        log.info(
            "tracker_check.completed",
            processed=report.processed,
            succeeded=report.succeeded,
            errored=report.errored,
            total_events=report.total_events,
            duration_ms=report.duration_ms,
        )
        return report

    async def check_one(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        data_source: SnapshotSource,
        tracker_id: uuid.UUID,
    ) -> ProcessResult:
        """Check a single tracker; failures are recorded against the tracker."""
        repo_full_name = ""
        try:
            async with session_factory() as session:
                async with session.begin():
                    result, snapshot = await self._check(session, data_source, tracker_id)
            repo_full_name = result.repo_full_name
        except Exception as exc:
            log.error("tracker.failed", tracker_id=str(tracker_id), error=str(exc))
            repo_full_name = await self._record_failure(session_factory, tracker_id, str(exc))
            return ProcessResult(tracker_id=tracker_id, repo_full_name=repo_full_name, error=str(exc))

        if snapshot is not None:
            await self._cache.set(repo_full_name, snapshot)
        return result

    # ── internal ──────────────────────────────────────────────────────────

    async def _check(
        self,
        session: AsyncSession,
        data_source: SnapshotSource,
        tracker_id: uuid.UUID,
    ) -> tuple[ProcessResult, Snapshot | None]:
        """Run the check inside *session*; returns the snapshot to cache after commit."""
        tracker = await self._tracker_service.get_by_id(session, tracker_id)
        if tracker is None:
            return ProcessResult(tracker_id=tracker_id, error="tracker not found"), None

        result = ProcessResult(tracker_id=tracker_id, repo_full_name=tracker.repo_full_name)
        if tracker.is_paused or not tracker.is_active:
            return result, None

        cached = await self._cache.get(tracker.repo_full_name)
        snapshot = await data_source.fetch_snapshot(tracker.repo_owner, tracker.repo_name)
        signature = activity_signature(snapshot)

        if signatures_match(signature, tracker.last_activity_signature):
            await self._tracker_service.record_success(session, tracker.id)
            log.debug("tracker.unchanged", tracker_id=str(tracker.id))
            return result, snapshot

        detector = EventDetector(
            tracker.tracked_events, cached, lookback=self._lookback, now=self._now
        )
        new_events: list[tuple[DetectedEvent, str]] = []
        for event in detector.detect(snapshot):
            sig = event_signature(event)
            if await self._event_log_service.exists(session, tracker.id, sig):
                continue
            if await self._event_log_service.record(session, tracker.id, event, sig):
                new_events.append((event, sig))

        if new_events:
            await self._enqueue(session, tracker, new_events)

        await self._tracker_service.record_success(session, tracker.id, signature=signature)

        result.events = [event for event, _ in new_events]
        result.events_detected = len(new_events)
        log.info(
            "tracker.checked",
            tracker_id=str(tracker.id),
            repo=tracker.repo_full_name,
            first_observation=cached is None,
            events=result.events_detected,
        )
        return result, snapshot

    async def _enqueue(
        self,
        session: AsyncSession,
        tracker: TrackedRepo,
        new_events: list[tuple[DetectedEvent, str]],
    ) -> None:
        user = await self._tracker_service.get_user(session, tracker.user_id)
        if user is None or not user.email:
            log.info("tracker.no_recipient", tracker_id=str(tracker.id))
            return

        job = NotificationJob(
            tracker_id=tracker.id,
            user_id=user.id,
            user_email=user.email,
            user_name=user.name,
            repo_full_name=tracker.repo_full_name,
            events=[JobEvent.from_detected(event, sig) for event, sig in new_events],
        )
        try:
            await self._queue.enqueue(job)
        except StoreError as exc:
            log.error(
                "queue.enqueue_failed",
                tracker_id=str(tracker.id),
                events=len(job.events),
                error=str(exc),
            )

    async def _record_failure(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tracker_id: uuid.UUID,
        error: str,
    ) -> str:
        """Count the failure in a fresh session. Returns the repo name if known."""
        try:
            async with session_factory() as session:
                async with session.begin():
                    tracker = await self._tracker_service.record_failure(
                        session,
                        tracker_id,
                        error=error,
                        max_error_count=self._max_error_count,
                    )
        except Exception as exc:
            log.warning("tracker.error_update_failed", tracker_id=str(tracker_id), error=str(exc))
            return ""

        if tracker is None:
            return ""
        if not tracker.is_active:
            log.warning(
                "tracker.deactivated",
                tracker_id=str(tracker_id),
                error_count=tracker.error_count,
            )
        return tracker.repo_full_name


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
