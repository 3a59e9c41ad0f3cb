from datetime import UTC, datetime

import pytest

from photoindex.index.directories import (
    create_or_restore_directory,
    directory_exists,
    get_directory,
    list_directories,
    maybe_delete_directory,
)
from photoindex.index.objects import (
    create_or_restore_object,
    get_object,
    list_objects,
    object_exists,
    set_time_taken,
    soft_delete_object,
    update_content_type,
)
from photoindex.index.users import get_or_create_user, get_user


async def _add(session, user_id, object_id, **kargs):
    kargs.setdefault("content_type", "image/jpeg")
    kargs.setdefault("md5_hash", "abc")
    return await create_or_restore_object(session, user_id=user_id, object_id=object_id, **kargs)


@pytest.mark.anyio
async def test_users(sessions):
    async with sessions.begin() as session:
        assert await get_user(session, "x@example.org") is None
        user = await get_or_create_user(session, "x@example.org")
        again = await get_or_create_user(session, "x@example.org")
        assert user.id == again.id
        assert (await get_user(session, "x@example.org")).id == user.id


@pytest.mark.anyio
async def test_create_or_restore_is_idempotent(sessions, user_id):
    async with sessions.begin() as session:
        first = await _add(session, user_id, "a/b.jpg", md5_hash="one")
        first_id, created_at = first.id, first.created_at
    async with sessions.begin() as session:
        second = await _add(session, user_id, "a/b.jpg", md5_hash="two", content_type="image/png")
        assert second.id == first_id
        assert second.created_at == created_at
        assert second.md5_hash == "two"
        assert second.content_type == "image/png"
        assert len(await list_objects(session, user_id, include_deleted=True)) == 1


@pytest.mark.anyio
async def test_soft_delete_and_restore(sessions, user_id):
    async with sessions.begin() as session:
        record = await _add(session, user_id, "a/b.jpg")
        record_id, created_at = record.id, record.created_at
    async with sessions.begin() as session:
        assert await soft_delete_object(session, user_id, "a/b.jpg")
        assert not await soft_delete_object(session, user_id, "a/b.jpg")
        assert not await object_exists(session, user_id, "a/b.jpg")
        assert await get_object(session, user_id, "a/b.jpg") is None
        tombstone = await get_object(session, user_id, "a/b.jpg", include_deleted=True)
        assert tombstone.deleted_at is not None
        assert not tombstone.is_live
        assert await list_objects(session, user_id) == []
    async with sessions.begin() as session:
        restored = await _add(session, user_id, "a/b.jpg")
        assert restored.id == record_id
        assert restored.is_live
        assert restored.created_at == created_at


@pytest.mark.anyio
async def test_objects_are_per_user(sessions, user_id, other_user_id):
    async with sessions.begin() as session:
        await _add(session, user_id, "a/b.jpg")
        assert await object_exists(session, user_id, "a/b.jpg")
        assert not await object_exists(session, other_user_id, "a/b.jpg")
        await _add(session, other_user_id, "a/b.jpg")
        assert await soft_delete_object(session, other_user_id, "a/b.jpg")
        assert await object_exists(session, user_id, "a/b.jpg")


@pytest.mark.anyio
async def test_update_fields(sessions, user_id):
    taken = datetime(2024, 5, 1, 12, 30, tzinfo=UTC)
    async with sessions.begin() as session:
        await _add(session, user_id, "x.jpg", time_taken=taken)
        assert (await get_object(session, user_id, "x.jpg")).time_taken == datetime(2024, 5, 1, 12, 30)
        assert await update_content_type(session, user_id, "x.jpg", "image/webp")
        assert await set_time_taken(session, user_id, "x.jpg", None)
        record = await get_object(session, user_id, "x.jpg")
        assert record.content_type == "image/webp"
        assert record.time_taken is None
        assert not await update_content_type(session, user_id, "missing.jpg", "image/webp")


@pytest.mark.anyio
async def test_list_objects_prefix(sessions, user_id):
    async with sessions.begin() as session:
        for key in ["a/1.jpg", "a/b/2.jpg", "a_b/3.jpg", "c/4.jpg"]:
            await _add(session, user_id, key)
        assert [o.object_id for o in await list_objects(session, user_id, "a/")] == ["a/1.jpg", "a/b/2.jpg"]
        assert [o.object_id for o in await list_objects(session, user_id, "a_")] == ["a_b/3.jpg"]
        assert len(await list_objects(session, user_id)) == 4


######################## DIRECTORIES #########################


@pytest.mark.anyio
async def test_directory_lifecycle(sessions):
    async with sessions.begin() as session:
        assert await create_or_restore_directory(session, "") is None
        directory = await create_or_restore_directory(session, "a/b")
        again = await create_or_restore_directory(session, "a/b")
        assert directory.id == again.id
        assert await directory_exists(session, "a/b")
        assert not await directory_exists(session, "a")


@pytest.mark.anyio
async def test_directory_gc(sessions, user_id):
    """The directory survives until its last live object is gone"""
    keys = [f"trip/{i}.jpg" for i in range(3)]
    async with sessions.begin() as session:
        await create_or_restore_directory(session, "trip")
        for key in keys:
            await _add(session, user_id, key)

    for i, key in enumerate(keys):
        async with sessions.begin() as session:
            deleted = await maybe_delete_directory(session, "trip", exclude_object_id=key, exclude_user_id=user_id)
            await soft_delete_object(session, user_id, key)
            assert deleted == (i == len(keys) - 1)
            assert await directory_exists(session, "trip") == (i < len(keys) - 1)

    async with sessions.begin() as session:
        # Already gone: nothing to do
        assert not await maybe_delete_directory(session, "trip")
        assert not await maybe_delete_directory(session, "never/existed")
        assert not await maybe_delete_directory(session, "")
        assert (await get_directory(session, "trip", include_deleted=True)).deleted_at is not None
        await create_or_restore_directory(session, "trip")
        assert await directory_exists(session, "trip")


@pytest.mark.anyio
async def test_prefixes_are_case_sensitive(sessions, user_id):
    async with sessions.begin() as session:
        await create_or_restore_directory(session, "Trip")
        await create_or_restore_directory(session, "trip")
        await _add(session, user_id, "Trip/a.png")
        await _add(session, user_id, "trip/b.png")

        assert [o.object_id for o in await list_objects(session, user_id, "trip/")] == ["trip/b.png"]
        assert [o.object_id for o in await list_objects(session, user_id, "Trip/")] == ["Trip/a.png"]
        assert await list_directories(session, "t") == ["trip"]
        assert await list_directories(session, "T", recursive=True) == ["Trip"]

        # trip/b.png does not keep Trip alive
        assert await maybe_delete_directory(
            session, "Trip", exclude_object_id="Trip/a.png", exclude_user_id=user_id
        )
        await soft_delete_object(session, user_id, "Trip/a.png")
        assert not await directory_exists(session, "Trip")
        assert await directory_exists(session, "trip")


@pytest.mark.anyio
async def test_directory_gc_counts_other_users_and_subdirectories(sessions, user_id, other_user_id):
    async with sessions.begin() as session:
        await create_or_restore_directory(session, "shared")
        await _add(session, user_id, "shared/mine.jpg")
        await _add(session, other_user_id, "shared/mine.jpg")
        # Excluding our object still leaves the other user's object with the same key
        assert not await maybe_delete_directory(
            session, "shared", exclude_object_id="shared/mine.jpg", exclude_user_id=user_id
        )
        await soft_delete_object(session, user_id, "shared/mine.jpg")
        await soft_delete_object(session, other_user_id, "shared/mine.jpg")

        await _add(session, user_id, "shared/deeper/x.jpg")
        assert not await maybe_delete_directory(session, "shared")
        await soft_delete_object(session, user_id, "shared/deeper/x.jpg")

        await _add(session, user_id, "shared_not_below/x.jpg")
        assert await maybe_delete_directory(session, "shared")


@pytest.mark.anyio
async def test_list_directories(sessions):
    async with sessions.begin() as session:
        for path in ["a", "a/b", "a/b/c", "a/d", "b", "ab"]:
            await create_or_restore_directory(session, path)
        await create_or_restore_directory(session, "gone")
        await maybe_delete_directory(session, "gone")

        assert await list_directories(session, recursive=True) == ["a", "a/b", "a/b/c", "a/d", "ab", "b"]
        assert await list_directories(session) == ["a", "ab", "b"]
        assert await list_directories(session, "a/") == ["a/b", "a/d"]
        assert await list_directories(session, "a/", recursive=True) == ["a/b", "a/b/c", "a/d"]
        assert await list_directories(session, "a/b/") == ["a/b/c"]
        assert await list_directories(session, "z") == []
