"""
Lifecycle of PhotoObject records: create-or-restore, soft delete and lookups.

These functions work inside the caller's session and never commit; the caller
decides the transaction boundary.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from photoindex.index.tables import PhotoObject, as_naive_utc, has_prefix, upsert, utcnow


async def create_or_restore_object(
    session: AsyncSession,
    *,
    user_id: int,
    object_id: str,
    content_type: str,
    md5_hash: str,
    time_taken: datetime | None = None,
) -> PhotoObject:
    """
    Insert the record, or if a record for (user_id, object_id) exists, live or soft-deleted,
    clear its tombstone and overwrite its attributes. created_at is never touched on conflict.
    Calling this repeatedly with the same input leaves exactly one live record.
    """
    now = utcnow()
    stmt = upsert(session, PhotoObject).values(
        user_id=user_id,
        object_id=object_id,
        content_type=content_type,
        md5_hash=md5_hash,
        time_taken=as_naive_utc(time_taken),
        created_at=now,
        updated_at=now,
        deleted_at=None,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "object_id"],
        set_=dict(
            content_type=stmt.excluded.content_type,
            md5_hash=stmt.excluded.md5_hash,
            time_taken=stmt.excluded.time_taken,
            updated_at=now,
            deleted_at=None,
        ),
    )
    await session.execute(stmt)
    record = await get_object(session, user_id, object_id, include_deleted=True)
    assert record is not None
    return record


async def get_object(
    session: AsyncSession, user_id: int, object_id: str, include_deleted: bool = False
) -> PhotoObject | None:
    query = select(PhotoObject).where(PhotoObject.user_id == user_id, PhotoObject.object_id == object_id)
    if not include_deleted:
        query = query.where(PhotoObject.deleted_at.is_(None))
    result = await session.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def object_exists(session: AsyncSession, user_id: int, object_id: str) -> bool:
    return await get_object(session, user_id, object_id) is not None


async def list_objects(
    session: AsyncSession, user_id: int, prefix: str = "", include_deleted: bool = False
) -> list[PhotoObject]:
    query = select(PhotoObject).where(PhotoObject.user_id == user_id)
    if prefix:
        query = query.where(has_prefix(PhotoObject.object_id, prefix))
    if not include_deleted:
        query = query.where(PhotoObject.deleted_at.is_(None))
    result = await session.execute(query.order_by(PhotoObject.object_id))
    return list(result.scalars())


async def soft_delete_object(session: AsyncSession, user_id: int, object_id: str) -> bool:
    """Tombstone the live record, if any. Returns whether a record was deleted."""
    now = utcnow()
    result = await session.execute(
        update(PhotoObject)
        .where(
            PhotoObject.user_id == user_id,
            PhotoObject.object_id == object_id,
            PhotoObject.deleted_at.is_(None),
        )
        .values(deleted_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def update_content_type(session: AsyncSession, user_id: int, object_id: str, content_type: str) -> bool:
    return await _update_live(session, user_id, object_id, content_type=content_type)


async def set_time_taken(session: AsyncSession, user_id: int, object_id: str, time_taken: datetime | None) -> bool:
    """Set (or clear, if None) the cached capture time of a live record."""
    return await _update_live(session, user_id, object_id, time_taken=as_naive_utc(time_taken))


async def _update_live(session: AsyncSession, user_id: int, object_id: str, **values) -> bool:
    values["updated_at"] = utcnow()
    result = await session.execute(
        update(PhotoObject)
        .where(
            PhotoObject.user_id == user_id,
            PhotoObject.object_id == object_id,
            PhotoObject.deleted_at.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0
