"""Shared key-value store backends and the components built on them."""

from repowatch.stores.base import KeyValueStore, StoreError
from repowatch.stores.job_lock import JobLock
from repowatch.stores.memory import MemoryStore
from repowatch.stores.notification_queue import JobEvent, NotificationJob, NotificationQueue
from repowatch.stores.redis_store import RedisStore
from repowatch.stores.snapshot_cache import SnapshotCache

__all__ = [
    "JobEvent",
    "JobLock",
    "KeyValueStore",
    "MemoryStore",
    "NotificationJob",
    "NotificationQueue",
    "RedisStore",
    "SnapshotCache",
    "StoreError",
    "create_store",
]


def create_store(redis_url: str | None) -> KeyValueStore:
    """Redis when a URL is configured, otherwise a process-local store."""
    if redis_url:
        return RedisStore.from_url(redis_url)
    return MemoryStore()
