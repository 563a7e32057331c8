"""SQLAlchemy ORM models — one file per table."""

from repowatch.models.event_log import EventLog
from repowatch.models.tracked_repo import TrackedRepo
from repowatch.models.user import User

__all__ = [
    "User",
    "TrackedRepo",
    "EventLog",
]
