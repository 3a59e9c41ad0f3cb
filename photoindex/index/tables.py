"""
Relational schema of the photo index.

All timestamps are stored as naive UTC datetimes (see utcnow), so that comparisons
behave the same on every database backend.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint, and_, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def as_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def as_aware_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class PhotoObject(Base):
    """
    Index record of one blob. A row with deleted_at set is a tombstone: it is
    invisible to every read, and is revived by create_or_restore_object.
    """

    __tablename__ = "photo_objects"
    __table_args__ = (
        UniqueConstraint("user_id", "object_id", name="uq_photo_objects_user_object"),
        Index("ix_photo_objects_listing", "user_id", "deleted_at", "time_taken", "object_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    object_id: Mapped[str] = mapped_column(String(1024))
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    content_type: Mapped[str] = mapped_column(String(255), default="application/octet-stream")
    md5_hash: Mapped[str] = mapped_column(String(64), default="")
    time_taken: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None


class PhotoDirectory(Base):
    """A virtual directory, materialized for the immediate parent of every live object."""

    __tablename__ = "photo_directories"

    id: Mapped[int] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(String(1024), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None


def upsert(session: AsyncSession, entity: type[Base]):
    """
    An INSERT that supports on_conflict_do_update for the session's backend.
    Upserts resolve create-vs-restore in one statement, so concurrent writers cannot race on it.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(entity)
    if dialect == "sqlite":
        return sqlite.insert(entity)
    raise NotImplementedError(f"Upsert is not supported on {dialect}")


def has_prefix(column, prefix: str):
    """
    Case-sensitive "column starts with prefix". LIKE ignores case on sqlite, so it only
    narrows the candidates (and can use an index); the substring comparison decides.
    """
    return and_(
        column.startswith(prefix, autoescape=True),
        func.substr(column, 1, len(prefix)) == prefix,
    )
