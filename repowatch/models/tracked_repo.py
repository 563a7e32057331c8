"""tracked_repos table."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from repowatch.core.database import Base, TimestampMixin


class TrackedRepo(TimestampMixin, Base):
    __tablename__ = "tracked_repos"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # repository coordinates
    repo_owner: Mapped[str] = mapped_column(String(255), nullable=False)
    repo_name: Mapped[str] = mapped_column(String(255), nullable=False)
    repo_full_name: Mapped[str] = mapped_column(String(511), nullable=False)
    repo_url: Mapped[str] = mapped_column(Text, nullable=False)

    # subscriptions, e.g. ["new_issue", "pr_merged_to_branch:develop"]
    tracked_events: Mapped[list[str]] = mapped_column(JSONB, nullable=False)

    # activity tracking
    last_activity_signature: Mapped[Optional[str]] = mapped_column(String(64))
    last_checked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # status
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    is_paused: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    last_error: Mapped[Optional[str]] = mapped_column(Text)

    tracked_since: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_tracked_repos_user_id_unique", "user_id", unique=True),
        Index("idx_tracked_repos_is_active", "is_active"),
        Index("idx_tracked_repos_last_checked", "last_checked_at"),
    )
