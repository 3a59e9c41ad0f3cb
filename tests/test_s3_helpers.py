import base64
import hashlib

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from photoindex.objectstorage.blobstore import BlobNotFound, BlobStoreError
from photoindex.objectstorage.s3bucket import S3BlobStore, _s3_errors, checksum_to_hex, etag_to_checksum


def test_etag_to_checksum():
    digest = hashlib.md5(b"photo").digest()
    assert etag_to_checksum(f'"{digest.hex()}"') == base64.b64encode(digest).decode()
    assert checksum_to_hex(etag_to_checksum(digest.hex())) == digest.hex()
    assert etag_to_checksum(None) == ""
    assert etag_to_checksum('"d41d8cd98f00b204e9800998ecf8427e-3"') == ""
    assert etag_to_checksum("not-hex") == ""
    assert checksum_to_hex("%%%") == ""


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "message"}}, "HeadObject")


@pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
def test_not_found_errors(code):
    with pytest.raises(BlobNotFound) as e:
        with _s3_errors("a/b.jpg", "head_object"):
            raise _client_error(code)
    assert e.value.key == "a/b.jpg"


def test_other_errors():
    with pytest.raises(BlobStoreError, match="AccessDenied"):
        with _s3_errors("a/b.jpg", "head_object"):
            raise _client_error("AccessDenied")
    with pytest.raises(BlobStoreError):
        with _s3_errors("a/b.jpg", "head_object"):
            raise EndpointConnectionError(endpoint_url="http://localhost:9000")


def test_prefix_keys():
    store = S3BlobStore(client=None, bucket="photos", prefix="/library/")  # type: ignore[arg-type]
    assert store._key("a/b.jpg") == "library/a/b.jpg"
    assert store._unkey("library/a/b.jpg") == "a/b.jpg"
    assert S3BlobStore(client=None, bucket="photos")._key("a/b.jpg") == "a/b.jpg"  # type: ignore[arg-type]
