"""
Copy and rename photos.

There is no transaction spanning the blob store and the index, so both operations
are a sequence of steps with a compensating action:

1. copy the blob
2. create (or restore) the destination record and its directory
   - if this fails, delete the copied blob again and surface the error
3. (rename only) delete the source blob, tombstone the source record and
   garbage-collect the source directory

A failure or cancellation between steps leaves a state that the next sync repairs.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from photoindex.errors import AlreadyExists, InvalidArgument, NotFound, StoreFailure
from photoindex.index.directories import create_or_restore_directory, maybe_delete_directory
from photoindex.index.objects import create_or_restore_object, get_object, soft_delete_object
from photoindex.index.tables import PhotoObject
from photoindex.library import store_failures
from photoindex.library.photos import Sessions, photo_from_record
from photoindex.models import Photo
from photoindex.objectstorage.blobstore import BlobAttributes, BlobNotFound, BlobStore, BlobStoreError
from photoindex.paths import directory_of, validate_key


async def copy_photo(sessions: Sessions, store: BlobStore, user_id: int, source: str, destination: str) -> Photo:
    record, attrs = await _copy(sessions, store, user_id, source, destination, operation="copy")
    logging.info(f"Copied photo {source} to {destination} for user {user_id}")
    return photo_from_record(record, attrs)


async def rename_photo(sessions: Sessions, store: BlobStore, user_id: int, source: str, destination: str) -> Photo:
    record, attrs = await _copy(sessions, store, user_id, source, destination, operation="rename")

    try:
        await store.delete(source)
    except BlobNotFound:
        logging.warning(f"Rename {source} -> {destination}: source blob was already gone")
    except BlobStoreError as e:
        # The destination is committed; the source stays live until a retry or sync
        raise StoreFailure(f"rename {source} (user {user_id}): could not delete source blob: {e}") from e

    with store_failures("rename", source, user_id):
        async with sessions.begin() as session:
            await soft_delete_object(session, user_id, source)
            await maybe_delete_directory(session, directory_of(source), exclude_object_id=source, exclude_user_id=user_id)

    logging.info(f"Renamed photo {source} to {destination} for user {user_id}")
    return photo_from_record(record, attrs)


async def _copy(
    sessions: Sessions, store: BlobStore, user_id: int, source: str, destination: str, operation: str
) -> tuple[PhotoObject, BlobAttributes]:
    validate_key(source, "source_object_id")
    validate_key(destination, "destination_object_id")
    if source == destination:
        raise InvalidArgument("source and destination cannot be the same")

    with store_failures(operation, source, user_id):
        async with sessions() as session:
            source_record = await get_object(session, user_id, source)
            if source_record is None:
                raise NotFound(f"source photo not found: {source}")
            if await get_object(session, user_id, destination) is not None:
                raise AlreadyExists(f"destination photo already exists: {destination}")

        try:
            attrs = await store.copy(source, destination)
        except BlobNotFound:
            raise NotFound(f"source photo not found in storage: {source}")

    try:
        async with sessions.begin() as session:
            record = await create_or_restore_object(
                session,
                user_id=user_id,
                object_id=destination,
                content_type=attrs.content_type or source_record.content_type,
                md5_hash=attrs.checksum or source_record.md5_hash,
                time_taken=source_record.time_taken,
            )
            await create_or_restore_directory(session, directory_of(destination))
    except Exception as e:
        await _remove_orphan(store, destination)
        if isinstance(e, SQLAlchemyError):
            raise StoreFailure(f"{operation} {source} -> {destination} (user {user_id}): index failure: {e}") from e
        raise

    return record, attrs


async def _remove_orphan(store: BlobStore, key: str) -> None:
    """Compensate a failed index write by deleting the blob that was just copied."""
    try:
        await store.delete(key)
    except (BlobNotFound, BlobStoreError) as e:
        logging.warning(f"Could not remove orphaned copy {key}, it will be picked up by the next sync: {e}")
