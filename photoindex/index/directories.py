"""
Virtual directories: materialization and garbage collection.

Only the immediate parent of an object is materialized; ancestors further up
are not created. Directory records are shared between users.
"""

import logging

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from photoindex.index.tables import PhotoDirectory, PhotoObject, has_prefix, upsert, utcnow


async def create_or_restore_directory(session: AsyncSession, path: str) -> PhotoDirectory | None:
    """Make sure a live directory record exists for path. The root ("") has no record."""
    if not path:
        return None
    now = utcnow()
    stmt = upsert(session, PhotoDirectory).values(path=path, created_at=now, updated_at=now, deleted_at=None)
    stmt = stmt.on_conflict_do_update(
        index_elements=["path"],
        set_=dict(updated_at=now, deleted_at=None),
    )
    await session.execute(stmt)
    return await get_directory(session, path)


async def get_directory(session: AsyncSession, path: str, include_deleted: bool = False) -> PhotoDirectory | None:
    query = select(PhotoDirectory).where(PhotoDirectory.path == path)
    if not include_deleted:
        query = query.where(PhotoDirectory.deleted_at.is_(None))
    result = await session.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def directory_exists(session: AsyncSession, path: str) -> bool:
    return await get_directory(session, path) is not None


async def soft_delete_directory(session: AsyncSession, path: str) -> bool:
    now = utcnow()
    result = await session.execute(
        update(PhotoDirectory)
        .where(PhotoDirectory.path == path, PhotoDirectory.deleted_at.is_(None))
        .values(deleted_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def maybe_delete_directory(
    session: AsyncSession,
    path: str,
    exclude_object_id: str | None = None,
    exclude_user_id: int | None = None,
) -> bool:
    """
    Soft-delete the directory if no live object (of any user) remains below it, not counting
    exclude_object_id (of exclude_user_id, if given) which is about to disappear.
    The count and the delete are one statement, so an object added concurrently keeps the directory.
    Returns whether the directory was deleted; an absent or already deleted directory is a no-op.
    """
    if not path:
        return False
    remaining = select(PhotoObject.id).where(
        has_prefix(PhotoObject.object_id, path + "/"),
        PhotoObject.deleted_at.is_(None),
    )
    if exclude_object_id is not None:
        excluded = PhotoObject.object_id == exclude_object_id
        if exclude_user_id is not None:
            excluded = and_(excluded, PhotoObject.user_id == exclude_user_id)
        remaining = remaining.where(~excluded)

    now = utcnow()
    result = await session.execute(
        update(PhotoDirectory)
        .where(
            PhotoDirectory.path == path,
            PhotoDirectory.deleted_at.is_(None),
            ~remaining.exists(),
        )
        .values(deleted_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    deleted = result.rowcount > 0
    if deleted:
        logging.info(f"Removed empty directory {path}")
    return deleted


async def list_directories(session: AsyncSession, prefix: str = "", recursive: bool = False) -> list[str]:
    """
    Live directory paths starting with prefix, ordered by path.
    Unless recursive, only the first path segment below the prefix is returned (deduplicated).
    """
    query = select(PhotoDirectory.path).where(PhotoDirectory.deleted_at.is_(None))
    if prefix:
        query = query.where(has_prefix(PhotoDirectory.path, prefix))
    paths = list((await session.execute(query.order_by(PhotoDirectory.path))).scalars())

    if recursive:
        return paths

    result: list[str] = []
    for path in paths:
        rest = path[len(prefix) :]
        separator = "/" if rest.startswith("/") else ""
        segment = rest.lstrip("/").split("/", 1)[0]
        if not segment:
            continue
        subdir = prefix + separator + segment
        if subdir not in result:
            result.append(subdir)
    return result
