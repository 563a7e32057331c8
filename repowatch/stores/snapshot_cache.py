"""Last observed Snapshot per repository, kept in the shared store."""

from __future__ import annotations

import json

import structlog

from repowatch.engines.activity_tracker.models import Snapshot
from repowatch.stores.base import KeyValueStore, StoreError

log = structlog.get_logger("repowatch.stores")

DEFAULT_SNAPSHOT_TTL = 600


def snapshot_key(repo_full_name: str) -> str:
    return f"activity:{repo_full_name}"


class SnapshotCache:
    """Read-through cache of the previous poll's snapshot.

    Every failure degrades to a miss: a miss only means the next poll is
    treated as a first observation.
    """

    def __init__(self, store: KeyValueStore, ttl: int = DEFAULT_SNAPSHOT_TTL) -> None:
        self._store = store
        self._ttl = ttl

    async def get(self, repo_full_name: str) -> Snapshot | None:
        key = snapshot_key(repo_full_name)
        try:
            raw = await self._store.get(key)
        except StoreError as exc:
            log.warning("snapshot_cache.get_failed", key=key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return Snapshot.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            log.warning("snapshot_cache.decode_failed", key=key, error=str(exc))
            return None

    async def set(
        self, repo_full_name: str, snapshot: Snapshot, ttl: int | None = None
    ) -> None:
        key = snapshot_key(repo_full_name)
        try:
            await self._store.set(key, json.dumps(snapshot.to_dict()), ttl=ttl or self._ttl)
        except StoreError as exc:
            log.warning("snapshot_cache.set_failed", key=key, error=str(exc))

    async def clear(self, repo_full_name: str) -> None:
        key = snapshot_key(repo_full_name)
        try:
            await self._store.delete(key)
        except StoreError as exc:
            log.warning("snapshot_cache.clear_failed", key=key, error=str(exc))
