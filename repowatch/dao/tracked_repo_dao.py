"""TrackedRepoDAO — tracked_repos table operations."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from repowatch.dao.base import BaseDAO
from repowatch.models.tracked_repo import TrackedRepo

_LAST_ERROR_MAX_LEN = 500


class TrackedRepoDAO(BaseDAO[TrackedRepo]):
    model = TrackedRepo

    # ── read ──────────────────────────────────────────────────────────────

    async def list_active(self, session: AsyncSession) -> list[TrackedRepo]:
        """Return every active tracker, oldest check first."""
        stmt = (
            select(TrackedRepo)
            .where(TrackedRepo.is_active.is_(True))
            .order_by(TrackedRepo.last_checked_at, TrackedRepo.id)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_user(self, session: AsyncSession, user_id: uuid.UUID) -> TrackedRepo | None:
        return await self.get_by_field(session, user_id=user_id)

    async def count_by_repo(self, session: AsyncSession, repo_full_name: str) -> int:
        """Return how many trackers (any user) watch *repo_full_name*."""
        q = select(TrackedRepo).where(TrackedRepo.repo_full_name == repo_full_name)
        return await self.count(session, q)

    # ── write ─────────────────────────────────────────────────────────────

    async def record_success(
        self,
        session: AsyncSession,
        pk: uuid.UUID,
        *,
        signature: str | None = None,
    ) -> None:
        """Mark a successful check: reset the error budget, optionally store a new signature."""
        self._require_pk(pk)
        values: dict = {
            "last_checked_at": datetime.now(timezone.utc),
            "error_count": 0,
            "last_error": None,
        }
        if signature is not None:
            values["last_activity_signature"] = signature
        stmt = update(TrackedRepo).where(TrackedRepo.id == pk).values(**values)
        await session.execute(stmt, execution_options={"synchronize_session": False})

    async def record_failure(
        self,
        session: AsyncSession,
        pk: uuid.UUID,
        *,
        error: str,
        max_error_count: int,
    ) -> TrackedRepo | None:
        """Increment the error count and deactivate once it reaches *max_error_count*.

        The increment happens in SQL so concurrent failures are not lost.
        Returns the updated row, or None if the tracker no longer exists.
        """
        self._require_pk(pk)
        new_count = TrackedRepo.error_count + 1
        stmt = (
            update(TrackedRepo)
            .where(TrackedRepo.id == pk)
            .values(
                error_count=new_count,
                last_error=error[:_LAST_ERROR_MAX_LEN],
                last_checked_at=datetime.now(timezone.utc),
                is_active=new_count < max_error_count,
            )
            .returning(TrackedRepo)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalars().first()
