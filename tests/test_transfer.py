import pytest
from sqlalchemy.exc import OperationalError

from photoindex.errors import AlreadyExists, InvalidArgument, NotFound, StoreFailure
from photoindex.index.directories import directory_exists
from photoindex.index.objects import get_object, object_exists
from photoindex.library import transfer
from photoindex.library.photos import list_directory_paths, upload_photo
from photoindex.library.transfer import copy_photo, rename_photo
from photoindex.objectstorage.blobstore import BlobStoreError
from tests.tools import check, make_jpeg


async def _chunks(data: bytes):
    yield data


async def _upload(sessions, blobs, user_id, key, data=None):
    return await upload_photo(sessions, blobs, user_id, key, _chunks(data or make_jpeg()))


@pytest.mark.anyio
async def test_copy(sessions, blobs, user_id):
    original = await _upload(sessions, blobs, user_id, "a/x.jpg")
    copied = await copy_photo(sessions, blobs, user_id, "a/x.jpg", "b/y.jpg")
    assert copied.object_id == "b/y.jpg"
    assert copied.md5_hash == original.md5_hash
    assert copied.date_taken == original.date_taken
    assert copied.camera_make == "Canon"
    assert blobs.blobs["b/y.jpg"][0] == blobs.blobs["a/x.jpg"][0]
    async with sessions() as session:
        assert await object_exists(session, user_id, "a/x.jpg")
        assert (await get_object(session, user_id, "b/y.jpg")).time_taken is not None
        assert await directory_exists(session, "a")
        assert await directory_exists(session, "b")


@pytest.mark.anyio
async def test_rename_removes_emptied_directory(sessions, blobs, user_id):
    await _upload(sessions, blobs, user_id, "old/x.jpg")
    renamed = await rename_photo(sessions, blobs, user_id, "old/x.jpg", "new/x.jpg")
    assert renamed.object_id == "new/x.jpg"
    assert set(blobs.blobs) == {"new/x.jpg"}
    async with sessions() as session:
        assert not await object_exists(session, user_id, "old/x.jpg")
        assert await object_exists(session, user_id, "new/x.jpg")
        assert not await directory_exists(session, "old")
        assert await directory_exists(session, "new")


@pytest.mark.anyio
async def test_rename_within_directory_keeps_it(sessions, blobs, user_id):
    await _upload(sessions, blobs, user_id, "d/x.jpg")
    await rename_photo(sessions, blobs, user_id, "d/x.jpg", "d/y.jpg")
    async with sessions() as session:
        assert await directory_exists(session, "d")


@pytest.mark.anyio
async def test_rename_at_root(sessions, blobs, user_id):
    original = await _upload(sessions, blobs, user_id, "x.jpg")
    await rename_photo(sessions, blobs, user_id, "x.jpg", "y.jpg")
    async with sessions() as session:
        assert (await get_object(session, user_id, "x.jpg", include_deleted=True)).deleted_at is not None
        assert (await get_object(session, user_id, "y.jpg")).md5_hash == original.md5_hash
        assert await list_directory_paths(sessions, recursive=True) == []


@pytest.mark.anyio
async def test_transfer_errors(sessions, blobs, user_id, other_user_id):
    await _upload(sessions, blobs, user_id, "a/x.jpg")
    await _upload(sessions, blobs, user_id, "a/y.jpg")
    with pytest.raises(AlreadyExists):
        await copy_photo(sessions, blobs, user_id, "a/x.jpg", "a/y.jpg")
    with pytest.raises(AlreadyExists):
        await rename_photo(sessions, blobs, user_id, "a/x.jpg", "a/y.jpg")
    with pytest.raises(NotFound):
        await copy_photo(sessions, blobs, user_id, "a/missing.jpg", "a/z.jpg")
    with pytest.raises(NotFound):
        await copy_photo(sessions, blobs, other_user_id, "a/x.jpg", "a/z.jpg")
    with pytest.raises(InvalidArgument):
        await copy_photo(sessions, blobs, user_id, "a/x.jpg", "a/x.jpg")
    with pytest.raises(InvalidArgument):
        await rename_photo(sessions, blobs, user_id, "a/x.jpg", "a/")
    # Nothing was written by the failed calls
    assert set(blobs.blobs) == {"a/x.jpg", "a/y.jpg"}


@pytest.mark.anyio
async def test_copy_onto_deleted_destination(sessions, blobs, user_id):
    await _upload(sessions, blobs, user_id, "a/x.jpg")
    await _upload(sessions, blobs, user_id, "a/y.jpg")
    await rename_photo(sessions, blobs, user_id, "a/y.jpg", "a/z.jpg")
    await copy_photo(sessions, blobs, user_id, "a/x.jpg", "a/y.jpg")
    async with sessions() as session:
        assert await object_exists(session, user_id, "a/y.jpg")


@pytest.mark.anyio
async def test_copy_source_blob_missing(sessions, blobs, user_id):
    await _upload(sessions, blobs, user_id, "a/x.jpg")
    del blobs.blobs["a/x.jpg"]
    with pytest.raises(NotFound):
        await copy_photo(sessions, blobs, user_id, "a/x.jpg", "b/x.jpg")
    assert "b/x.jpg" not in blobs.blobs


@pytest.mark.anyio
async def test_failed_index_write_removes_copy(sessions, blobs, user_id, monkeypatch):
    await _upload(sessions, blobs, user_id, "a/x.jpg")

    async def broken_index(*args, **kargs):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(transfer, "create_or_restore_object", broken_index)
    with pytest.raises(StoreFailure):
        await copy_photo(sessions, blobs, user_id, "a/x.jpg", "b/x.jpg")
    with pytest.raises(StoreFailure):
        await rename_photo(sessions, blobs, user_id, "a/x.jpg", "b/x.jpg")
    assert set(blobs.blobs) == {"a/x.jpg"}
    async with sessions() as session:
        assert await object_exists(session, user_id, "a/x.jpg")
        assert not await directory_exists(session, "b")


@pytest.mark.anyio
async def test_rename_source_delete_failure(sessions, blobs, user_id, monkeypatch):
    await _upload(sessions, blobs, user_id, "a/x.jpg")

    async def broken_delete(key):
        raise BlobStoreError("access denied")

    monkeypatch.setattr(blobs, "delete", broken_delete)
    with pytest.raises(StoreFailure):
        await rename_photo(sessions, blobs, user_id, "a/x.jpg", "b/x.jpg")
    # The destination is complete; the source is left for a retry
    async with sessions() as session:
        assert await object_exists(session, user_id, "b/x.jpg")
        assert await object_exists(session, user_id, "a/x.jpg")


@pytest.mark.anyio
async def test_transfer_api(client, sessions, blobs, user_id):
    await _upload(sessions, blobs, user_id, "a/x.jpg")
    res = await client.post("/photos/copy", json={"source_object_id": "a/x.jpg", "destination_object_id": "b/x.jpg"})
    check(res, 201)
    assert res.json()["object_id"] == "b/x.jpg"
    res = await client.post("/photos/copy", json={"source_object_id": "a/x.jpg", "destination_object_id": "b/x.jpg"})
    check(res, 409)
    assert res.json()["category"] == "already_exists"
    res = await client.post("/photos/rename", json={"source_object_id": "b/x.jpg", "destination_object_id": "c/x.jpg"})
    check(res, 200)
    res = await client.post("/photos/rename", json={"source_object_id": "b/x.jpg", "destination_object_id": "d/x.jpg"})
    check(res, 404)
    res = await client.post("/photos/copy", json={"source_object_id": "a/x.jpg", "destination_object_id": ""})
    check(res, 422)
    res = await client.get("/directories")
    assert res.json()["prefixes"] == ["a", "c"]
