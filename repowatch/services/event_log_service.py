"""EventLogService — deduplicated event log per tracker."""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from repowatch.dao.event_log_dao import EventLogDAO
from repowatch.engines.activity_tracker.models import DetectedEvent


class EventLogService:
    """Stateless service over the ``events_log`` table.

    The unique (tracker, signature) constraint is the only deduplication
    guarantee; :meth:`exists` is a cheap pre-check, :meth:`record` is the
    authoritative one.
    """

    def __init__(self, event_log_dao: EventLogDAO) -> None:
        self._dao = event_log_dao

    async def exists(self, session: AsyncSession, tracker_id: uuid.UUID, signature: str) -> bool:
        return await self._dao.exists_signature(session, tracker_id, signature)

    async def record(
        self,
        session: AsyncSession,
        tracker_id: uuid.UUID,
        event: DetectedEvent,
        signature: str,
    ) -> bool:
        """Log *event* unless an entry with *signature* exists. True if inserted."""
        return await self._dao.insert_if_absent(
            session,
            tracked_repo_id=tracker_id,
            event_type=event.type,
            event_data=event.to_payload(),
            event_signature=signature,
        )

    async def mark_notified(
        self, session: AsyncSession, tracker_id: uuid.UUID, signatures: list[str]
    ) -> int:
        return await self._dao.mark_notified(session, tracker_id, signatures)

    async def list_for_tracker(
        self,
        session: AsyncSession,
        tracker_id: uuid.UUID,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> dict:
        """Return the tracker's log entries, newest first, cursor paginated."""
        page = await self._dao.list_paginated(session, tracker_id, cursor, page_size)
        total = await self._dao.count_for_tracker(session, tracker_id)
        return {
            "data": page.data,
            "next_cursor": page.next_cursor,
            "has_more": page.has_more,
            "total": total,
        }

    async def count_for_tracker(self, session: AsyncSession, tracker_id: uuid.UUID) -> int:
        return await self._dao.count_for_tracker(session, tracker_id)
