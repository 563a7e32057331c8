"""NotificationRunner — drain the notification queue at a capped rate."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repowatch.engines.notification.sender import DeliveryResult
from repowatch.services.event_log_service import EventLogService
from repowatch.stores.job_lock import JobLock
from repowatch.stores.notification_queue import NotificationJob, NotificationQueue

log = structlog.get_logger("repowatch.engine.notification")

LOCK_NAME = "send-email-job"


class NotificationSender(Protocol):
    async def send(self, job: NotificationJob) -> DeliveryResult: ...


@dataclass
class DrainReport:
    skipped: bool = False
    processed: int = 0
    errors: int = 0
    duration_ms: int = 0


class NotificationRunner:
    """Pop up to ``batch_size`` jobs, deliver each, mark its events notified.

    A failed delivery is logged and dropped for this cycle; the job is not
    pushed back onto the queue.
    """

    def __init__(
        self,
        queue: NotificationQueue,
        sender: NotificationSender,
        event_log_service: EventLogService,
        lock: JobLock,
        *,
        batch_size: int = 10,
        delay: float = 0.1,
    ) -> None:
        self._queue = queue
        self._sender = sender
        self._event_log_service = event_log_service
        self._lock = lock
        self._batch_size = batch_size
        self._delay = delay

    async def run(self, session_factory: async_sessionmaker[AsyncSession]) -> DrainReport:
        started = time.monotonic()
        token = await self._lock.acquire(LOCK_NAME)
        if token is None:
            log.info("notification.skipped", reason="lock held")
            return DrainReport(skipped=True, duration_ms=_elapsed_ms(started))

        report = DrainReport()
        try:
            for _ in range(self._batch_size):
                job = await self._queue.dequeue()
                if job is None:
                    break

                result = await self._sender.send(job)
                if result.success:
                    report.processed += 1
                    log.info(
                        "notification.sent",
                        tracker_id=str(job.tracker_id),
                        to=job.user_email,
                        events=len(job.events),
                        message_id=result.message_id,
                    )
                    await self._mark_notified(session_factory, job)
                else:
                    report.errors += 1
                    log.error(
                        "notification.failed",
                        tracker_id=str(job.tracker_id),
                        to=job.user_email,
                        events=len(job.events),
                        error=result.error,
                    )

                await asyncio.sleep(self._delay)
        finally:
            await self._lock.release(LOCK_NAME, token)

        report.duration_ms = _elapsed_ms(started)
        log.info(
            "notification.drained",
            processed=report.processed,
            errors=report.errors,
            duration_ms=report.duration_ms,
        )
        return report

    async def _mark_notified(
        self, session_factory: async_sessionmaker[AsyncSession], job: NotificationJob
    ) -> None:
        try:
            async with session_factory() as session:
                async with session.begin():
                    updated = await self._event_log_service.mark_notified(
                        session, job.tracker_id, job.event_ids
                    )
        except Exception:
            log.error("notification.mark_failed", tracker_id=str(job.tracker_id), exc_info=True)
            return
        log.debug("notification.marked", tracker_id=str(job.tracker_id), updated=updated)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
