"""
Reconcile the index with the blob store.

The blob store is the source of truth: blobs without a live record are (re)indexed,
live records without a blob are tombstoned, and optionally the photo metadata of every
blob is re-extracted from its bytes. Each record is repaired in its own transaction,
so an interrupted run leaves a valid, partially repaired index, and running it again
(or concurrently) converges to the same state.
"""

import logging
import tempfile

import anyio.to_thread
from sqlalchemy.exc import SQLAlchemyError

from photoindex.errors import PhotoIndexError
from photoindex.index.directories import create_or_restore_directory, maybe_delete_directory
from photoindex.index.objects import create_or_restore_object, list_objects, set_time_taken, soft_delete_object
from photoindex.library import store_failures
from photoindex.library.photos import DEFAULT_CHUNK_SIZE, DEFAULT_SPOOL_SIZE, Sessions
from photoindex.metadata import PHOTO_METADATA_KEYS, extract_photo_metadata, from_blob_metadata, to_blob_metadata
from photoindex.models import SyncResult
from photoindex.objectstorage.blobstore import BlobAttributes, BlobNotFound, BlobStore, BlobStoreError
from photoindex.paths import directory_of, is_index_file

logger = logging.getLogger("photoindex.sync")

ITEM_FAILURES = (PhotoIndexError, BlobNotFound, BlobStoreError, SQLAlchemyError, OSError)


async def reconcile(
    sessions: Sessions,
    store: BlobStore,
    user_id: int,
    refresh_metadata: bool = False,
    prefix: str = "",
) -> SyncResult:
    result = SyncResult()

    with store_failures("sync", prefix or "*", user_id):
        blobs: dict[str, BlobAttributes] = {}
        async for attrs in store.list(prefix):
            blobs[attrs.key] = attrs
        async with sessions() as session:
            indexed = {r.object_id for r in await list_objects(session, user_id, prefix)}

    unindexed: set[str] = set()
    for key in sorted(blobs.keys() - indexed):
        try:
            await _add(sessions, store, user_id, key)
        except ITEM_FAILURES as e:
            logger.warning(f"Sync: could not index {key} for user {user_id}: {e}")
            unindexed.add(key)
            continue
        result.added += 1

    for key in sorted(indexed - blobs.keys()):
        try:
            if await _remove(sessions, store, user_id, key):
                result.removed += 1
        except ITEM_FAILURES as e:
            logger.warning(f"Sync: could not remove {key} for user {user_id}: {e}")

    if refresh_metadata:
        for key in sorted(blobs):
            if is_index_file(key) or key in unindexed:
                continue
            try:
                await refresh_photo_metadata(sessions, store, user_id, key)
            except ITEM_FAILURES as e:
                logger.warning(f"Sync: could not refresh metadata of {key} for user {user_id}: {e}")
                continue
            result.metadata_updated += 1

    logger.info(
        f"Sync completed for user {user_id}: added={result.added}, removed={result.removed}, "
        f"metadata_updated={result.metadata_updated}, total_blobs={len(blobs)}, total_indexed_before={len(indexed)}"
    )
    return result


async def _add(sessions: Sessions, store: BlobStore, user_id: int, key: str) -> None:
    # Listings do not carry content type and metadata, so look at the blob itself
    attrs = await store.stat(key)
    meta = from_blob_metadata(attrs.metadata)
    with store_failures("sync add", key, user_id):
        async with sessions.begin() as session:
            await create_or_restore_object(
                session,
                user_id=user_id,
                object_id=key,
                content_type=attrs.content_type,
                md5_hash=attrs.checksum,
                time_taken=meta.date_taken if meta.has_date_taken else None,
            )
            await create_or_restore_directory(session, directory_of(key))
    logger.debug(f"Sync: indexed {key} for user {user_id}")


async def _remove(sessions: Sessions, store: BlobStore, user_id: int, key: str) -> bool:
    with store_failures("sync remove", key, user_id):
        # The blob may have been written after the listing was taken
        try:
            await store.stat(key)
        except BlobNotFound:
            pass
        else:
            logger.debug(f"Sync: {key} appeared after listing, keeping it for user {user_id}")
            return False
        async with sessions.begin() as session:
            removed = await soft_delete_object(session, user_id, key)
            if removed:
                await maybe_delete_directory(session, directory_of(key))
    if removed:
        logger.debug(f"Sync: removed {key} for user {user_id}")
    return removed


async def refresh_photo_metadata(
    sessions: Sessions,
    store: BlobStore,
    user_id: int,
    key: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    spool_size: int = DEFAULT_SPOOL_SIZE,
) -> None:
    """Re-extract the metadata of a blob from its bytes, store it with the blob and update the capture time."""
    with tempfile.SpooledTemporaryFile(max_size=spool_size) as spool:
        async for chunk in store.stream(key, chunk_size):
            spool.write(chunk)
        meta = await anyio.to_thread.run_sync(extract_photo_metadata, spool, key)

    with store_failures("sync metadata", key, user_id):
        await store.update(key, metadata=to_blob_metadata(meta), remove=PHOTO_METADATA_KEYS)
        async with sessions.begin() as session:
            await set_time_taken(session, user_id, key, meta.date_taken if meta.has_date_taken else None)
    logger.info(
        f"Updated metadata for {key}: has_date_taken={meta.has_date_taken}, has_location={meta.has_location}"
    )
