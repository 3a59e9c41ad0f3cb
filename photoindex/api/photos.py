"""API Endpoints for listing and managing photos."""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Path, Query

from photoindex.api.auth import authenticated_user
from photoindex.connections import blobstore, db
from photoindex.index.pagination import DEFAULT_PAGE_SIZE
from photoindex.index.tables import User
from photoindex.library.photos import (
    delete_photo,
    generate_signed_url,
    get_photo,
    list_photos,
    photo_exists,
    update_photo_metadata,
)
from photoindex.library.transfer import copy_photo, rename_photo
from photoindex.models import (
    DeleteResult,
    Photo,
    PhotoExists,
    PhotoList,
    SignedUrl,
    SignedUrlRequest,
    TransferRequest,
    UpdateMetadataRequest,
)

app_photos = APIRouter(prefix="/photos", tags=["photos"])

ObjectKey = Annotated[str, Path(description="Object key of the photo, e.g. photos/2024/img.jpg")]


@app_photos.get("")
async def list_photos_endpoint(
    prefix: Annotated[str, Query(description="Only list photos directly in this directory")] = "",
    page_size: Annotated[int, Query(description="Number of photos per page (max 1000)")] = DEFAULT_PAGE_SIZE,
    page_token: Annotated[str | None, Query(description="Token from a previous page")] = None,
    user: User = Depends(authenticated_user),
) -> PhotoList:
    """
    List photos, newest first. Photos without a date taken come last, ordered by key.

    Photos in subdirectories of the prefix and directory index files are not listed.
    Follow next_page_token until it is empty to see all photos.
    """
    return await list_photos(db(), user.id, prefix, page_size, page_token)


@app_photos.get("/get/{object_id:path}")
async def get_photo_endpoint(object_id: ObjectKey, user: User = Depends(authenticated_user)) -> Photo:
    """Get a photo with its attributes and stored metadata."""
    return await get_photo(db(), blobstore(), user.id, object_id)


@app_photos.get("/exists/{object_id:path}")
async def photo_exists_endpoint(object_id: ObjectKey, user: User = Depends(authenticated_user)) -> PhotoExists:
    return PhotoExists(exists=await photo_exists(db(), user.id, object_id))


@app_photos.delete("/{object_id:path}")
async def delete_photo_endpoint(object_id: ObjectKey, user: User = Depends(authenticated_user)) -> DeleteResult:
    """Delete a photo. Its directory is removed as well if this was the last photo in it."""
    return DeleteResult(success=await delete_photo(db(), blobstore(), user.id, object_id))


@app_photos.post("/copy", status_code=201)
async def copy_photo_endpoint(
    body: Annotated[TransferRequest, Body(...)], user: User = Depends(authenticated_user)
) -> Photo:
    """Copy a photo to a new key. The destination must not exist yet."""
    return await copy_photo(db(), blobstore(), user.id, body.source_object_id, body.destination_object_id)


@app_photos.post("/rename")
async def rename_photo_endpoint(
    body: Annotated[TransferRequest, Body(...)], user: User = Depends(authenticated_user)
) -> Photo:
    """Move a photo to a new key. The destination must not exist yet."""
    return await rename_photo(db(), blobstore(), user.id, body.source_object_id, body.destination_object_id)


@app_photos.post("/signed-url")
async def signed_url_endpoint(
    body: Annotated[SignedUrlRequest, Body(...)], user: User = Depends(authenticated_user)
) -> SignedUrl:
    """
    Get a presigned URL to access a photo directly in the object store.

    method is one of GET, PUT, DELETE or HEAD; expiration_seconds is at most 7 days.
    """
    return await generate_signed_url(
        db(), blobstore(), user.id, body.object_id, body.method, body.expiration_seconds
    )


@app_photos.post("/metadata/{object_id:path}")
async def update_metadata_endpoint(
    object_id: ObjectKey,
    body: Annotated[UpdateMetadataRequest, Body(...)],
    user: User = Depends(authenticated_user),
) -> Photo:
    """Change the content type and/or add custom metadata keys to a photo."""
    return await update_photo_metadata(
        db(), blobstore(), user.id, object_id, body.content_type, body.custom_metadata
    )
