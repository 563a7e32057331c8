"""Process-local KeyValueStore for development and tests."""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable


class MemoryStore:
    """In-memory KeyValueStore with TTL expiry.

    No method awaits between reading and writing state, so each operation is
    atomic with respect to other coroutines on the same event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: dict[str, str] = {}
        self._expiry: dict[str, float] = {}
        self._lists: dict[str, deque[str]] = {}

    def _expire(self, key: str) -> None:
        deadline = self._expiry.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._values.pop(key, None)
            self._expiry.pop(key, None)

    def _store(self, key: str, value: str, ttl: int | None) -> None:
        self._values[key] = value
        if ttl is None:
            self._expiry.pop(key, None)
        else:
            self._expiry[key] = self._clock() + ttl

    async def get(self, key: str) -> str | None:
        self._expire(key)
        return self._values.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        self._store(key, value, ttl)

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        self._expire(key)
        if key in self._values:
            return False
        self._store(key, value, ttl)
        return True

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._expiry.pop(key, None)
        self._lists.pop(key, None)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        self._expire(key)
        if self._values.get(key) != value:
            return False
        await self.delete(key)
        return True

    async def exists(self, key: str) -> bool:
        self._expire(key)
        return key in self._values or bool(self._lists.get(key))

    async def push(self, key: str, value: str) -> None:
        self._lists.setdefault(key, deque()).append(value)

    async def pop(self, key: str) -> str | None:
        items = self._lists.get(key)
        if not items:
            return None
        return items.popleft()

    async def length(self, key: str) -> int:
        return len(self._lists.get(key, ()))

    async def close(self) -> None:
        return None
