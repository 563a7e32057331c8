"""users table.

Owned by the surrounding application; the tracker only reads the delivery
address from it.
"""

import uuid
from typing import Optional

from sqlalchemy import Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from repowatch.core.database import Base, TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    email: Mapped[Optional[str]] = mapped_column(Text, unique=True)
    name: Mapped[Optional[str]] = mapped_column(Text)
