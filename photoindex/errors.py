"""
Error categories exposed at the service boundary.

Every operation raises one of these, so callers (and the HTTP layer) only ever
see a typed category instead of a raw driver or storage error.
"""


class PhotoIndexError(Exception):
    status_code: int = 500
    category: str = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(PhotoIndexError):
    status_code = 404
    category = "not_found"


class AlreadyExists(PhotoIndexError):
    status_code = 409
    category = "already_exists"


class InvalidArgument(PhotoIndexError, ValueError):
    status_code = 400
    category = "invalid_argument"


class Unauthenticated(PhotoIndexError):
    status_code = 401
    category = "unauthenticated"


class StoreFailure(PhotoIndexError):
    """The blob store or the index database failed for a reason other than not-found."""

    status_code = 503
    category = "store_failure"
