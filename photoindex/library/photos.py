"""
Single photo operations: get, exists, list, delete, upload, download, signed URLs and metadata updates.

Writes go to the blob store first and are then reflected in the index.
"""

import base64
import hashlib
import logging
import tempfile
from datetime import UTC, datetime, timedelta
from typing import AsyncIterable, AsyncIterator

import anyio.to_thread
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from photoindex.errors import InvalidArgument, NotFound
from photoindex.index.directories import create_or_restore_directory, list_directories, maybe_delete_directory
from photoindex.index.objects import (
    create_or_restore_object,
    get_object,
    soft_delete_object,
    update_content_type,
)
from photoindex.index.pagination import list_page
from photoindex.index.tables import PhotoObject, as_aware_utc
from photoindex.library import store_failures
from photoindex.metadata import PhotoMetadata, extract_photo_metadata, from_blob_metadata, to_blob_metadata
from photoindex.models import Photo, PhotoList, SignedUrl
from photoindex.objectstorage.blobstore import SIGN_METHODS, BlobAttributes, BlobNotFound, BlobStore
from photoindex.paths import directory_of, guess_content_type, validate_key

Sessions = async_sessionmaker[AsyncSession]

DEFAULT_SIGNED_URL_SECONDS = 3600
MAX_SIGNED_URL_SECONDS = 7 * 24 * 3600
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_SPOOL_SIZE = 8 * 1024 * 1024


def checksum_of(digest) -> str:
    """base64 of an MD5 digest, the checksum format of the index."""
    return base64.b64encode(digest.digest()).decode("ascii")


def photo_from_record(record: PhotoObject, attrs: BlobAttributes | None = None) -> Photo:
    """Combine an index record with (optional) blob attributes and their stored metadata."""
    meta = from_blob_metadata(attrs.metadata) if attrs is not None else PhotoMetadata()
    if not meta.has_date_taken and record.time_taken is not None:
        meta.date_taken = as_aware_utc(record.time_taken)
        meta.has_date_taken = True
    return Photo(
        **meta.model_dump(),
        object_id=record.object_id,
        filename=record.object_id,
        content_type=record.content_type,
        size_bytes=attrs.size if attrs is not None else 0,
        md5_hash=record.md5_hash,
        created_at=as_aware_utc(record.created_at),
        updated_at=as_aware_utc(record.updated_at),
    )


async def require_photo(sessions: Sessions, user_id: int, object_id: str) -> PhotoObject:
    """The live record of the user for object_id, or NotFound."""
    validate_key(object_id)
    with store_failures("get", object_id, user_id):
        async with sessions() as session:
            record = await get_object(session, user_id, object_id)
    if record is None:
        raise NotFound(f"photo not found: {object_id}")
    return record


async def _stat(store: BlobStore, object_id: str, user_id: int) -> BlobAttributes:
    with store_failures("stat", object_id, user_id):
        try:
            return await store.stat(object_id)
        except BlobNotFound:
            raise NotFound(f"photo not found in storage: {object_id}")


async def get_photo(sessions: Sessions, store: BlobStore, user_id: int, object_id: str) -> Photo:
    record = await require_photo(sessions, user_id, object_id)
    attrs = await _stat(store, object_id, user_id)
    logging.info(f"Retrieved photo {object_id} for user {user_id}")
    return photo_from_record(record, attrs)


async def photo_exists(sessions: Sessions, user_id: int, object_id: str) -> bool:
    validate_key(object_id)
    with store_failures("exists", object_id, user_id):
        async with sessions() as session:
            return await get_object(session, user_id, object_id) is not None


async def list_photos(
    sessions: Sessions,
    user_id: int,
    prefix: str = "",
    page_size: int | None = None,
    page_token: str | None = None,
) -> PhotoList:
    with store_failures("list", prefix, user_id):
        async with sessions() as session:
            page = await list_page(session, user_id, prefix, page_size, page_token)
    logging.info(f"Listed {len(page.items)} photos under '{prefix}' for user {user_id}")
    return PhotoList(photos=[photo_from_record(r) for r in page.items], next_page_token=page.next_page_token)


async def list_directory_paths(sessions: Sessions, prefix: str = "", recursive: bool = False) -> list[str]:
    with store_failures("list directories", prefix):
        async with sessions() as session:
            return await list_directories(session, prefix, recursive)


async def delete_photo(sessions: Sessions, store: BlobStore, user_id: int, object_id: str) -> bool:
    await require_photo(sessions, user_id, object_id)
    with store_failures("delete", object_id, user_id):
        try:
            await store.delete(object_id)
        except BlobNotFound:
            logging.warning(f"Photo {object_id} was already gone from the blob store, removing it from the index")
        async with sessions.begin() as session:
            await soft_delete_object(session, user_id, object_id)
            await maybe_delete_directory(
                session, directory_of(object_id), exclude_object_id=object_id, exclude_user_id=user_id
            )
    logging.info(f"Deleted photo {object_id} for user {user_id}")
    return True


async def upload_photo(
    sessions: Sessions,
    store: BlobStore,
    user_id: int,
    object_id: str,
    chunks: AsyncIterable[bytes],
    content_type: str | None = None,
    spool_size: int = DEFAULT_SPOOL_SIZE,
) -> Photo:
    """
    Store the streamed bytes under object_id with their extracted photo metadata, and index them.
    The body is spooled to a temporary file (on disk above spool_size) while its MD5 is computed.
    """
    validate_key(object_id)
    digest = hashlib.md5()
    size = 0
    with tempfile.SpooledTemporaryFile(max_size=spool_size) as spool:
        async for chunk in chunks:
            if not chunk:
                continue
            digest.update(chunk)
            spool.write(chunk)
            size += len(chunk)
        if size == 0:
            raise InvalidArgument("data is required")

        meta = await anyio.to_thread.run_sync(extract_photo_metadata, spool, object_id)
        content_type = content_type or guess_content_type(object_id)
        checksum = checksum_of(digest)

        with store_failures("upload", object_id, user_id):
            attrs = await store.put(object_id, spool, content_type, to_blob_metadata(meta))
            async with sessions.begin() as session:
                record = await create_or_restore_object(
                    session,
                    user_id=user_id,
                    object_id=object_id,
                    content_type=content_type,
                    md5_hash=checksum,
                    time_taken=meta.date_taken if meta.has_date_taken else None,
                )
                await create_or_restore_directory(session, directory_of(object_id))

    logging.info(f"Uploaded photo {object_id} ({size} bytes) for user {user_id}")
    return photo_from_record(record, attrs)


async def open_download(
    sessions: Sessions, store: BlobStore, user_id: int, object_id: str, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> tuple[BlobAttributes, AsyncIterator[bytes]]:
    """Check ownership and existence, and return the attributes and a chunked byte stream of the photo."""
    record = await require_photo(sessions, user_id, object_id)
    attrs = await _stat(store, object_id, user_id)
    if not attrs.checksum:
        attrs.checksum = record.md5_hash
    logging.info(f"Downloading photo {object_id} ({attrs.size} bytes) for user {user_id}")
    return attrs, store.stream(object_id, chunk_size)


async def generate_signed_url(
    sessions: Sessions,
    store: BlobStore,
    user_id: int,
    object_id: str,
    method: str = "GET",
    expiration_seconds: int = DEFAULT_SIGNED_URL_SECONDS,
) -> SignedUrl:
    method = method.upper() if method else "GET"
    if method not in SIGN_METHODS:
        raise InvalidArgument(f"unsupported method {method}, must be one of {', '.join(SIGN_METHODS)}")
    if expiration_seconds <= 0:
        expiration_seconds = DEFAULT_SIGNED_URL_SECONDS
    if expiration_seconds > MAX_SIGNED_URL_SECONDS:
        raise InvalidArgument(f"expiration cannot exceed {MAX_SIGNED_URL_SECONDS} seconds (7 days)")

    await require_photo(sessions, user_id, object_id)
    with store_failures("sign", object_id, user_id):
        url = await store.sign_url(object_id, method, expiration_seconds)  # type: ignore[arg-type]
    expires_at = datetime.now(UTC) + timedelta(seconds=expiration_seconds)
    logging.info(f"Generated signed {method} url for {object_id} for user {user_id}, valid {expiration_seconds}s")
    return SignedUrl(url=url, expires_at=expires_at)


async def update_photo_metadata(
    sessions: Sessions,
    store: BlobStore,
    user_id: int,
    object_id: str,
    content_type: str | None = None,
    custom_metadata: dict[str, str] | None = None,
) -> Photo:
    if not content_type and not custom_metadata:
        raise InvalidArgument("at least one of custom_metadata or content_type must be provided")
    record = await require_photo(sessions, user_id, object_id)

    with store_failures("update metadata", object_id, user_id):
        try:
            attrs = await store.update(object_id, content_type=content_type or None, metadata=custom_metadata or None)
        except BlobNotFound:
            raise NotFound(f"photo not found in storage: {object_id}")
        if content_type and content_type != record.content_type:
            async with sessions.begin() as session:
                await update_content_type(session, user_id, object_id, content_type)
                record = await get_object(session, user_id, object_id) or record

    logging.info(
        f"Updated metadata of {object_id} for user {user_id}: "
        f"content_type={content_type}, {len(custom_metadata or {})} custom keys"
    )
    return photo_from_record(record, attrs)
