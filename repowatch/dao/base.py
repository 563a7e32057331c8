"""BaseDAO — shared row access plus keyset pagination with signed cursors."""

import base64
import hashlib
import hmac
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import Select, func, select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from repowatch.core.database import Base

ModelT = TypeVar("ModelT", bound=Base)

PAGE_SIZE_MIN = 1
PAGE_SIZE_MAX = 100
PAGE_SIZE_DEFAULT = 20

_IMMUTABLE = frozenset({"id", "created_at"})


class InvalidCursorError(ValueError):
    """The client sent a cursor we did not issue, or one that was altered."""


@dataclass(frozen=True)
class Cursor:
    """Position after the last row of a page: its sort key and id."""

    position: datetime
    id: uuid.UUID


@dataclass
class Page(Generic[ModelT]):
    data: list[ModelT] = field(default_factory=list)
    next_cursor: str | None = None
    has_more: bool = False


class CursorCodec:
    """Opaque cursor format: ``b64(<iso-timestamp> <uuid>).<hmac>``.

    The HMAC stops clients from forging positions; it does not hide them.
    """

    def __init__(self, secret: str | bytes) -> None:
        self._key = secret.encode() if isinstance(secret, str) else secret

    def _mac(self, body: str) -> str:
        digest = hmac.new(self._key, body.encode(), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest[:12]).decode().rstrip("=")

    def encode(self, position: datetime, row_id: uuid.UUID) -> str:
        if position.tzinfo is None:
            position = position.replace(tzinfo=timezone.utc)
        raw = f"{position.isoformat()} {row_id}".encode()
        body = base64.urlsafe_b64encode(raw).decode().rstrip("=")
        return f"{body}.{self._mac(body)}"

    def decode(self, cursor: str) -> Cursor:
        body, sep, mac = cursor.partition(".")
        if not sep or not body:
            raise InvalidCursorError(f"invalid cursor: {cursor!r}")
        if not hmac.compare_digest(mac, self._mac(body)):
            raise InvalidCursorError(f"cursor signature mismatch: {cursor!r}")
        try:
            padded = body + "=" * (-len(body) % 4)
            stamp, row_id = base64.urlsafe_b64decode(padded).decode().split(" ")
            return Cursor(position=datetime.fromisoformat(stamp), id=uuid.UUID(row_id))
        except (ValueError, UnicodeDecodeError) as exc:
            raise InvalidCursorError(f"invalid cursor: {cursor!r}") from exc


# Set REPOWATCH_CURSOR_SECRET in every deployment that serves the API.
_codec = CursorCodec(os.environ.get("REPOWATCH_CURSOR_SECRET", "changeme-cursor-secret"))


def encode_cursor(position: datetime, row_id: uuid.UUID) -> str:
    return _codec.encode(position, row_id)


def decode_cursor(cursor: str) -> Cursor:
    """Raises :class:`InvalidCursorError` for malformed or tampered cursors."""
    return _codec.decode(cursor)


class BaseDAO(Generic[ModelT]):
    """Row access for one mapped model.

    Subclasses set ``model``; ``cursor_column`` names the timestamp that
    :meth:`paginate` orders by, newest first, with ``id`` as tie-breaker.
    """

    model: type[ModelT]
    cursor_column: ClassVar[str] = "created_at"

    @staticmethod
    def _require_pk(pk: uuid.UUID) -> None:
        if pk is None:
            raise ValueError("pk must not be None")

    async def get_by_id(self, session: AsyncSession, pk: uuid.UUID) -> ModelT | None:
        self._require_pk(pk)
        return await session.get(self.model, pk)

    async def get_by_field(self, session: AsyncSession, **filters: Any) -> ModelT | None:
        """First row whose columns equal all *filters*, or None."""
        if not filters:
            raise ValueError("get_by_field() requires at least one filter")
        stmt = select(self.model).filter_by(**filters).limit(1)
        return (await session.scalars(stmt)).first()

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        obj = self.model(**values)
        session.add(obj)
        await session.flush()
        # pull server defaults (id, timestamps) back onto the instance
        await session.refresh(obj)
        return obj

    async def update(self, session: AsyncSession, pk: uuid.UUID, **values: Any) -> ModelT | None:
        """Assign *values* to row *pk*. Returns None when the row is gone."""
        self._require_pk(pk)
        columns = self.model.__mapper__.column_attrs.keys()
        unknown = [k for k in values if k not in columns]
        if unknown:
            raise AttributeError(f"{self.model.__name__} has no column(s) {unknown}")
        frozen = _IMMUTABLE.intersection(values)
        if frozen:
            raise AttributeError(f"{sorted(frozen)} cannot be updated")

        obj = await session.get(self.model, pk)
        if obj is None:
            return None
        for key, val in values.items():
            setattr(obj, key, val)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def delete(self, session: AsyncSession, pk: uuid.UUID) -> bool:
        self._require_pk(pk)
        obj = await session.get(self.model, pk)
        if obj is None:
            return False
        await session.delete(obj)
        await session.flush()
        return True

    async def count(self, session: AsyncSession, query: Select | None = None) -> int:
        """Rows matched by *query*, or all rows of the table."""
        source = self.model.__table__ if query is None else query.subquery()
        return await session.scalar(select(func.count()).select_from(source))

    async def paginate(
        self,
        session: AsyncSession,
        query: Select,
        cursor: str | None = None,
        page_size: int = PAGE_SIZE_DEFAULT,
    ) -> Page[ModelT]:
        """Return one page of *query*, which must not carry ORDER BY or LIMIT."""
        size = min(max(page_size, PAGE_SIZE_MIN), PAGE_SIZE_MAX)
        sort_col = getattr(self.model, self.cursor_column)
        id_col = self.model.id

        if cursor:
            after = decode_cursor(cursor)
            query = query.where(tuple_(sort_col, id_col) < (after.position, after.id))

        # one extra row tells us whether another page exists
        rows = list(
            await session.scalars(query.order_by(sort_col.desc(), id_col.desc()).limit(size + 1))
        )
        if len(rows) <= size:
            return Page(data=rows)

        rows = rows[:size]
        last = rows[-1]
        return Page(
            data=rows,
            next_cursor=encode_cursor(getattr(last, self.cursor_column), last.id),
            has_more=True,
        )
