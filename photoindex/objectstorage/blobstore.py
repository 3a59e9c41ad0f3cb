"""
The blob store interface.

The blob store is the source of truth for which objects exist and what their
bytes and side-channel metadata are. Implementations raise BlobNotFound for a
missing key and BlobStoreError for every other failure, so callers can tell
"absent" apart from "broken".
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import IO, AsyncIterator, Collection, Literal

from pydantic import BaseModel

SignMethod = Literal["GET", "PUT", "DELETE", "HEAD"]
SIGN_METHODS: tuple[str, ...] = ("GET", "PUT", "DELETE", "HEAD")


class BlobNotFound(FileNotFoundError):
    def __init__(self, key: str):
        super().__init__(f"Object {key} not found in blob store")
        self.key = key


class BlobStoreError(Exception):
    pass


class BlobAttributes(BaseModel):
    key: str
    size: int = 0
    content_type: str = "application/octet-stream"
    #: base64 encoded MD5 of the content (may be empty for multipart uploads)
    checksum: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    metadata: dict[str, str] = {}


class BlobStore(ABC):
    @abstractmethod
    async def put(
        self, key: str, data: bytes | IO[bytes], content_type: str, metadata: dict[str, str] | None = None
    ) -> BlobAttributes:
        """Store data (bytes or a readable binary file) under key, replacing any existing object."""

    @abstractmethod
    async def get(self, key: str) -> bytes: ...

    @abstractmethod
    def stream(self, key: str, chunk_size: int) -> AsyncIterator[bytes]:
        """Yield the object's bytes in chunks of at most chunk_size."""

    @abstractmethod
    async def stat(self, key: str) -> BlobAttributes: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def copy(self, src: str, dst: str) -> BlobAttributes:
        """Server-side copy, including content type and metadata. Returns the attributes of dst."""

    @abstractmethod
    def list(self, prefix: str = "") -> AsyncIterator[BlobAttributes]:
        """
        Yield every object below prefix. Listing attributes always have key, size and checksum;
        content type and metadata may need a stat() call to be accurate.
        """

    @abstractmethod
    async def update(
        self,
        key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
        remove: Collection[str] = (),
    ) -> BlobAttributes:
        """Change content type and/or merge metadata keys into the existing metadata, after dropping the remove keys."""

    @abstractmethod
    async def sign_url(self, key: str, method: SignMethod, expires_in: int) -> str: ...

    async def close(self) -> None:
        return None
