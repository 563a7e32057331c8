"""Named mutual-exclusion lock over the shared store."""

from __future__ import annotations

import secrets

import structlog

from repowatch.stores.base import KeyValueStore, StoreError

log = structlog.get_logger("repowatch.stores")

DEFAULT_LOCK_TTL = 300


def lock_key(name: str) -> str:
    return f"lock:{name}"


class JobLock:
    """At most one holder per lock name across all processes.

    :meth:`acquire` hands the caller a fresh random token, and
    :meth:`release` only deletes the key while it still holds that token,
    so a run whose lock expired cannot free its successor's lock. A holder
    that dies is cleaned up by the TTL.
    """

    def __init__(self, store: KeyValueStore, ttl: int = DEFAULT_LOCK_TTL) -> None:
        self._store = store
        self._ttl = ttl

    async def acquire(self, name: str) -> str | None:
        """Return the holder token, or None when the lock is taken."""
        token = secrets.token_hex(16)
        try:
            acquired = await self._store.set_if_absent(lock_key(name), token, self._ttl)
        except StoreError as exc:
            # Fail closed: an unreachable store must not let two runs overlap.
            log.error("lock.acquire_failed", lock=name, error=str(exc))
            return None
        if not acquired:
            return None
        log.debug("lock.acquired", lock=name, ttl=self._ttl)
        return token

    async def release(self, name: str, token: str) -> None:
        try:
            released = await self._store.delete_if_equals(lock_key(name), token)
        except StoreError as exc:
            log.error("lock.release_failed", lock=name, error=str(exc))
            return
        if not released:
            log.warning("lock.not_owned", lock=name)

    async def is_locked(self, name: str) -> bool:
        try:
            return await self._store.exists(lock_key(name))
        except StoreError as exc:
            log.error("lock.check_failed", lock=name, error=str(exc))
            return False
