"""
Blob store on S3-compatible object storage (e.g., AWS S3, MinIO, SeaweedFS, Cloudflare R2).
"""

import base64
import binascii
from contextlib import contextmanager
from typing import IO, AsyncIterator, Collection

from aiobotocore.client import AioBaseClient
from botocore.exceptions import BotoCoreError, ClientError

from photoindex.objectstorage.blobstore import BlobAttributes, BlobNotFound, BlobStore, BlobStoreError, SignMethod

NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")

PRESIGN_OPERATIONS: dict[str, str] = {
    "GET": "get_object",
    "PUT": "put_object",
    "DELETE": "delete_object",
    "HEAD": "head_object",
}


def etag_to_checksum(etag: str | None) -> str:
    """
    The ETag of a single-part upload is the hex MD5 of the content. Convert it to the
    base64 form used everywhere else. Multipart ETags ("<hex>-<parts>") are not an MD5.
    """
    if not etag:
        return ""
    etag = etag.strip('"')
    if "-" in etag:
        return ""
    try:
        return base64.b64encode(bytes.fromhex(etag)).decode("ascii")
    except ValueError:
        return ""


def checksum_to_hex(checksum: str) -> str:
    try:
        return base64.b64decode(checksum).hex()
    except (binascii.Error, ValueError):
        return ""


@contextmanager
def _s3_errors(key: str, operation: str):
    try:
        yield
    except ClientError as e:
        error = e.response.get("Error", {})
        if error.get("Code") in NOT_FOUND_CODES:
            raise BlobNotFound(key) from e
        raise BlobStoreError(f"S3 {operation} failed for {key}: {error.get('Code')} {error.get('Message', '')}") from e
    except BotoCoreError as e:
        raise BlobStoreError(f"S3 {operation} failed for {key}: {e}") from e


class S3BlobStore(BlobStore):
    def __init__(self, client: AioBaseClient, bucket: str, prefix: str = ""):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/") + "/" if prefix.strip("/") else ""

    def _key(self, key: str) -> str:
        return self.prefix + key

    def _unkey(self, s3_key: str) -> str:
        return s3_key[len(self.prefix) :]

    async def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet."""
        try:
            await self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            error = e.response.get("Error", {})
            if error.get("Code") in ("404", "NoSuchBucket"):
                with _s3_errors(self.bucket, "create_bucket"):
                    await self.client.create_bucket(Bucket=self.bucket)
            else:
                raise BlobStoreError(f"Cannot access bucket {self.bucket}: {error.get('Code')}") from e

    async def put(
        self, key: str, data: bytes | IO[bytes], content_type: str, metadata: dict[str, str] | None = None
    ) -> BlobAttributes:
        with _s3_errors(key, "put_object"):
            await self.client.put_object(
                Bucket=self.bucket,
                Key=self._key(key),
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        return await self.stat(key)

    async def get(self, key: str) -> bytes:
        with _s3_errors(key, "get_object"):
            res = await self.client.get_object(Bucket=self.bucket, Key=self._key(key))
            async with res["Body"] as body:
                return await body.read()

    async def stream(self, key: str, chunk_size: int) -> AsyncIterator[bytes]:
        with _s3_errors(key, "get_object"):
            res = await self.client.get_object(Bucket=self.bucket, Key=self._key(key))
            async with res["Body"] as body:
                while True:
                    chunk = await body.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk

    async def stat(self, key: str) -> BlobAttributes:
        with _s3_errors(key, "head_object"):
            res = await self.client.head_object(Bucket=self.bucket, Key=self._key(key))
        return BlobAttributes(
            key=key,
            size=res.get("ContentLength", 0),
            content_type=res.get("ContentType") or "application/octet-stream",
            checksum=etag_to_checksum(res.get("ETag")),
            created_at=res.get("LastModified"),
            updated_at=res.get("LastModified"),
            metadata=res.get("Metadata", {}),
        )

    async def delete(self, key: str) -> None:
        # S3 deletes are idempotent, so check existence first to report missing keys
        await self.stat(key)
        with _s3_errors(key, "delete_object"):
            await self.client.delete_object(Bucket=self.bucket, Key=self._key(key))

    async def copy(self, src: str, dst: str) -> BlobAttributes:
        with _s3_errors(src, "copy_object"):
            await self.client.copy_object(
                Bucket=self.bucket,
                Key=self._key(dst),
                CopySource={"Bucket": self.bucket, "Key": self._key(src)},
                MetadataDirective="COPY",
            )
        return await self.stat(dst)

    async def list(self, prefix: str = "") -> AsyncIterator[BlobAttributes]:
        paginator = self.client.get_paginator("list_objects_v2")
        with _s3_errors(prefix, "list_objects_v2"):
            async for page in paginator.paginate(Bucket=self.bucket, Prefix=self._key(prefix)):
                for content in page.get("Contents", []):
                    if "Key" not in content:
                        continue
                    yield BlobAttributes(
                        key=self._unkey(content["Key"]),
                        size=content.get("Size", 0),
                        checksum=etag_to_checksum(content.get("ETag")),
                        updated_at=content.get("LastModified"),
                    )

    async def update(
        self,
        key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
        remove: Collection[str] = (),
    ) -> BlobAttributes:
        # S3 metadata is immutable, so replace the object with a copy of itself
        current = await self.stat(key)
        merged = {k: v for k, v in current.metadata.items() if k not in remove}
        merged.update(metadata or {})
        with _s3_errors(key, "copy_object"):
            await self.client.copy_object(
                Bucket=self.bucket,
                Key=self._key(key),
                CopySource={"Bucket": self.bucket, "Key": self._key(key)},
                MetadataDirective="REPLACE",
                ContentType=content_type or current.content_type,
                Metadata=merged,
            )
        return await self.stat(key)

    async def sign_url(self, key: str, method: SignMethod, expires_in: int) -> str:
        with _s3_errors(key, "generate_presigned_url"):
            return await self.client.generate_presigned_url(
                PRESIGN_OPERATIONS[method],
                Params={"Bucket": self.bucket, "Key": self._key(key)},
                ExpiresIn=expires_in,
            )
