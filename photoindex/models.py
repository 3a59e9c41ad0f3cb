from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field

from photoindex.metadata import PhotoMetadata

ObjectId = Annotated[str, Field(min_length=1, title="Object key, e.g. photos/2024/img.jpg")]


class Photo(PhotoMetadata):
    """A photo as seen by clients: index record fields plus the metadata stored with the blob."""

    object_id: str
    filename: str
    content_type: str
    size_bytes: int = 0
    md5_hash: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PhotoList(BaseModel):
    photos: list[Photo]
    next_page_token: str | None = None


class DirectoryList(BaseModel):
    prefixes: list[str]


class PhotoExists(BaseModel):
    exists: bool


class DeleteResult(BaseModel):
    success: bool


class TransferRequest(BaseModel):
    source_object_id: ObjectId
    destination_object_id: ObjectId


class SignedUrlRequest(BaseModel):
    object_id: ObjectId
    method: str = "GET"
    expiration_seconds: int = 3600


class SignedUrl(BaseModel):
    url: str
    expires_at: datetime


class UpdateMetadataRequest(BaseModel):
    content_type: str | None = None
    custom_metadata: dict[str, str] | None = None


class SyncRequest(BaseModel):
    update_metadata: bool = False


class SyncResult(BaseModel):
    added: int = 0
    removed: int = 0
    metadata_updated: int = 0


######################## DIRECTORY INDEX FILES #########################


class DirectoryConfiguration(BaseModel, extra="forbid"):
    """Settings for a directory, given as YAML front matter of its index.md file."""

    sort_photos_in_chronological_order: bool = False


class MarkdownBody(BaseModel):
    markdown: str


class Markdown(BaseModel):
    object_id: str
    markdown: str | None = None
    configuration: DirectoryConfiguration | None = None
