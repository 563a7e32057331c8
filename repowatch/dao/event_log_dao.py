"""EventLogDAO — events_log table operations."""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import exists, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from repowatch.dao.base import BaseDAO, Page
from repowatch.models.event_log import EventLog


class EventLogDAO(BaseDAO[EventLog]):
    model = EventLog
    cursor_column = "detected_at"

    # ── read ──────────────────────────────────────────────────────────────

    async def exists_signature(
        self, session: AsyncSession, tracked_repo_id: uuid.UUID, event_signature: str
    ) -> bool:
        stmt = select(
            exists().where(
                EventLog.tracked_repo_id == tracked_repo_id,
                EventLog.event_signature == event_signature,
            )
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def list_paginated(
        self,
        session: AsyncSession,
        tracked_repo_id: uuid.UUID,
        cursor: str | None = None,
        page_size: int = 20,
    ) -> Page[EventLog]:
        query = select(EventLog).where(EventLog.tracked_repo_id == tracked_repo_id)
        return await self.paginate(session, query, cursor, page_size)

    async def count_for_tracker(self, session: AsyncSession, tracked_repo_id: uuid.UUID) -> int:
        q = select(EventLog).where(EventLog.tracked_repo_id == tracked_repo_id)
        return await self.count(session, q)

    # ── write ─────────────────────────────────────────────────────────────

    async def insert_if_absent(
        self,
        session: AsyncSession,
        *,
        tracked_repo_id: uuid.UUID,
        event_type: str,
        event_data: dict[str, Any],
        event_signature: str,
    ) -> bool:
        """Insert one entry; ON CONFLICT (tracker, signature) DO NOTHING.

        Returns True if a row was actually inserted.
        """
        stmt = (
            insert(EventLog)
            .values(
                tracked_repo_id=tracked_repo_id,
                event_type=event_type,
                event_data=event_data,
                event_signature=event_signature,
                detected_at=datetime.now(timezone.utc),
                notification_sent=False,
            )
            .on_conflict_do_nothing(constraint="uq_events_log_tracker_signature")
        )
        result = await session.execute(stmt)
        return result.rowcount > 0

    async def mark_notified(
        self,
        session: AsyncSession,
        tracked_repo_id: uuid.UUID,
        event_signatures: list[str],
    ) -> int:
        """Flag the given entries as notified. Returns the number of rows updated."""
        if not event_signatures:
            return 0
        stmt = (
            update(EventLog)
            .where(
                EventLog.tracked_repo_id == tracked_repo_id,
                EventLog.event_signature.in_(event_signatures),
            )
            .values(notification_sent=True, notified_at=datetime.now(timezone.utc))
        )
        result = await session.execute(stmt)
        return result.rowcount
