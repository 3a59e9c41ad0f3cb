"""API Endpoints for uploading and downloading photo bytes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Path, Request
from fastapi.responses import StreamingResponse

from photoindex.api.auth import authenticated_user
from photoindex.config import get_settings
from photoindex.connections import blobstore, db
from photoindex.index.tables import User
from photoindex.library.photos import open_download, upload_photo
from photoindex.models import Photo

app_bytes = APIRouter(prefix="/bytes", tags=["bytes"])

ObjectKey = Annotated[str, Path(description="Object key of the photo, e.g. photos/2024/img.jpg")]


@app_bytes.put("/{object_id:path}", status_code=201)
async def upload(
    object_id: ObjectKey,
    request: Request,
    content_type: Annotated[str | None, Header()] = None,
    user: User = Depends(authenticated_user),
) -> Photo:
    """
    Upload a photo as the raw request body. EXIF metadata is extracted and stored with the photo.

    The content type defaults to a guess from the file extension. Uploading to an existing key replaces it.
    """
    return await upload_photo(
        db(),
        blobstore(),
        user.id,
        object_id,
        request.stream(),
        content_type=content_type,
        spool_size=get_settings().upload_spool_size,
    )


@app_bytes.get("/{object_id:path}")
async def download(object_id: ObjectKey, user: User = Depends(authenticated_user)) -> StreamingResponse:
    """Download the bytes of a photo."""
    attrs, chunks = await open_download(
        db(), blobstore(), user.id, object_id, chunk_size=get_settings().download_chunk_size
    )
    headers = {"Content-Length": str(attrs.size)}
    if attrs.checksum:
        headers["Content-MD5"] = attrs.checksum
    return StreamingResponse(chunks, media_type=attrs.content_type, headers=headers)
