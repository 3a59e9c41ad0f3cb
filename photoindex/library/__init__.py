"""
Operations on the photo library. Each operation spans the blob store and the index,
and takes both as explicit arguments so it can run against any pair of stores.
"""

from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from photoindex.errors import StoreFailure
from photoindex.objectstorage.blobstore import BlobStoreError


@contextmanager
def store_failures(operation: str, key: str, user_id: int | None = None):
    """
    Wrap storage and database errors as StoreFailure naming the operation, key and user.
    BlobNotFound and PhotoIndexError pass through unchanged.
    """
    try:
        yield
    except BlobStoreError as e:
        raise StoreFailure(f"{operation} {key} (user {user_id}): blob store failure: {e}") from e
    except SQLAlchemyError as e:
        raise StoreFailure(f"{operation} {key} (user {user_id}): index failure: {e}") from e
