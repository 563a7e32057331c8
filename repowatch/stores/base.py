"""KeyValueStore capability shared by the lock, queue and snapshot cache."""

from __future__ import annotations

from typing import Protocol


class StoreError(Exception):
    """The backing store could not be reached or rejected the command."""


class KeyValueStore(Protocol):
    """Minimal async key-value + list interface.

    Implementations raise :class:`StoreError` for every backend failure.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """Atomically set *key* only if it does not exist. True if it was set."""
        ...

    async def delete(self, key: str) -> None: ...

    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Atomically delete *key* only if it currently holds *value*."""
        ...

    async def exists(self, key: str) -> bool: ...

    async def push(self, key: str, value: str) -> None:
        """Append *value* to the tail of the list at *key*."""
        ...

    async def pop(self, key: str) -> str | None:
        """Remove and return the oldest value of the list at *key*."""
        ...

    async def length(self, key: str) -> int: ...

    async def close(self) -> None: ...
