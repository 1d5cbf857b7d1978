"""Entity base model and result types.

Timestamps are UTC-aware in Python and stored as naive UTC, since SQLite
drops offsets on the way in.
"""

import math
from uuid import UUID

import typing as t
from dataclasses import dataclass, field
from datetime import UTC, datetime
from sqlalchemy import DateTime
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime
    cache_ok = True

    def process_bind_param(
        self,
        value: datetime | None,
        dialect: t.Any,
    ) -> datetime | None:
        aware = ensure_utc(value)
        return aware.replace(tzinfo=None) if aware is not None else None

    def process_result_value(
        self,
        value: datetime | None,
        dialect: t.Any,
    ) -> datetime | None:
        return ensure_utc(value)


class EntityBase(SQLModel):
    """Columns shared by every repository entity.

    Concrete entities subclass this with ``table=True`` and declare their own
    ``id`` primary key. ``is_active`` is False exactly when ``deleted_at`` is
    set; the ``mark_*`` helpers are the only writers of these fields.
    """

    is_active: bool = Field(default=True, index=True)
    created_at: datetime | None = Field(
        default=None,
        sa_type=UTCDateTime,
        nullable=False,
    )
    created_by: UUID | None = None
    modified_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    modified_by: UUID | None = None
    deleted_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    deleted_by: UUID | None = None
    # declared for optimistic concurrency; never incremented or checked
    version: int = Field(default=0)

    @property
    def is_deleted(self) -> bool:
        return not self.is_active and self.deleted_at is not None

    def mark_created(self, now: datetime, created_by: UUID | None = None) -> None:
        self.created_at = now
        if created_by is not None:
            self.created_by = created_by

    def mark_modified(self, now: datetime, modified_by: UUID | None = None) -> None:
        self.modified_at = now
        if modified_by is not None:
            self.modified_by = modified_by

    def mark_deleted(self, now: datetime, deleted_by: UUID | None) -> None:
        self.deleted_at = now
        self.deleted_by = deleted_by
        self.is_active = False

    def mark_restored(self, now: datetime, restored_by: UUID | None = None) -> None:
        self.deleted_at = None
        self.deleted_by = None
        self.is_active = True
        self.mark_modified(now, restored_by)


def detached_copy[T](entity: T, _seen: dict[int, t.Any] | None = None) -> T:
    """Copy an entity's loaded columns and relationships into new instances.

    The copy is transient: no session tracks it, so later writes through a
    session never change it. Relationships that were not loaded stay unset.
    """
    seen = {} if _seen is None else _seen
    if id(entity) in seen:
        return seen[id(entity)]

    state = sa_inspect(entity)
    mapper = state.mapper
    loaded = state.dict
    copy = mapper.class_(
        **{
            attr.key: loaded[attr.key]
            for attr in mapper.column_attrs
            if attr.key in loaded
        },
    )
    seen[id(entity)] = copy

    for relationship in mapper.relationships:
        if relationship.key not in loaded:
            continue
        value = loaded[relationship.key]
        if value is None:
            related = None
        elif relationship.uselist:
            related = [detached_copy(item, seen) for item in value]
        else:
            related = detached_copy(value, seen)
        setattr(copy, relationship.key, related)
    return copy


@dataclass
class PagedResult[T]:
    """One page of query results.

    ``total_count`` is the number of matches for the predicate when the page
    was read, independent of ``len(items)``.
    """

    total_count: int
    items: list[T] = field(default_factory=list)
    page: int = 1
    page_size: int = 50

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1
