"""Durable FIFO of pending notification jobs."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from repowatch.engines.activity_tracker.models import DetectedEvent
from repowatch.stores.base import KeyValueStore, StoreError

log = structlog.get_logger("repowatch.stores")

DEFAULT_QUEUE_KEY = "email-notifications-queue"


@dataclass
class JobEvent:
    """One event inside a notification job. ``id`` is the event signature."""

    id: str
    type: str
    title: str
    url: str
    author: str
    timestamp: str

    @classmethod
    def from_detected(cls, event: DetectedEvent, signature: str) -> JobEvent:
        return cls(
            id=signature,
            type=event.type,
            title=event.title,
            url=event.url,
            author=event.author,
            timestamp=event.timestamp,
        )


@dataclass
class NotificationJob:
    tracker_id: uuid.UUID
    user_id: uuid.UUID
    user_email: str
    repo_full_name: str
    user_name: str | None = None
    events: list[JobEvent] = field(default_factory=list)

    @property
    def event_ids(self) -> list[str]:
        return [e.id for e in self.events]

    def to_dict(self) -> dict[str, Any]:
        return {
            "trackerId": str(self.tracker_id),
            "userId": str(self.user_id),
            "userEmail": self.user_email,
            "userName": self.user_name,
            "repoFullName": self.repo_full_name,
            "events": [vars(e).copy() for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationJob:
        return cls(
            tracker_id=uuid.UUID(data["trackerId"]),
            user_id=uuid.UUID(data["userId"]),
            user_email=data["userEmail"],
            user_name=data.get("userName"),
            repo_full_name=data["repoFullName"],
            events=[JobEvent(**e) for e in data.get("events", [])],
        )


class NotificationQueue:
    """Jobs are pushed to the tail and popped from the head."""

    def __init__(self, store: KeyValueStore, key: str = DEFAULT_QUEUE_KEY) -> None:
        self._store = store
        self._key = key

    async def enqueue(self, job: NotificationJob) -> None:
        """Push *job*. Raises :class:`StoreError` if the store is unreachable."""
        await self._store.push(self._key, json.dumps(job.to_dict()))
        log.info(
            "queue.enqueued",
            tracker_id=str(job.tracker_id),
            events=len(job.events),
        )

    async def dequeue(self) -> NotificationJob | None:
        try:
            raw = await self._store.pop(self._key)
        except StoreError as exc:
            log.error("queue.dequeue_failed", key=self._key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return NotificationJob.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            log.error("queue.job_dropped", key=self._key, error=str(exc), payload=raw[:200])
            return None

    async def length(self) -> int:
        try:
            return await self._store.length(self._key)
        except StoreError as exc:
            log.error("queue.length_failed", key=self._key, error=str(exc))
            return 0
