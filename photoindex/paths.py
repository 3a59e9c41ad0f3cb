"""Helpers for treating flat object keys as a directory hierarchy."""

import posixpath

from photoindex.errors import InvalidArgument

INDEX_FILENAME = "index.md"
INDEX_FILE_SUFFIX = ".md"

INFER_MIME_TYPE: dict[str, str] = {
    # Images
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
    "heif": "image/heif",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "dng": "image/x-adobe-dng",
    # Videos
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    # Text
    "md": "text/markdown",
}


def directory_of(key: str) -> str:
    """
    Return the parent directory of an object key, or "" if the key lives at the root.

    >>> directory_of("photos/2024/img.jpg")
    'photos/2024'
    >>> directory_of("img.jpg")
    ''
    """
    parent = posixpath.dirname(key)
    if parent in ("", "."):
        return ""
    return parent


def is_index_file(key: str) -> bool:
    """Markdown files describe a directory, they are not photos."""
    return key.lower().endswith(INDEX_FILE_SUFFIX)


def is_in_subdirectory(key: str, prefix: str) -> bool:
    """True if key sits in a (virtual) subdirectory below prefix rather than directly in it."""
    relative = key[len(prefix) :] if prefix and key.startswith(prefix) else key
    return "/" in relative


def markdown_key(prefix: str) -> str:
    return prefix.rstrip("/") + "/" + INDEX_FILENAME


def split_filepath(filepath: str) -> tuple[str, str, str]:
    if "/" in filepath:
        path, file = filepath.rsplit("/", 1)
    else:
        path, file = "", filepath

    ext = file.rsplit(".", 1)[-1].lower() if "." in file else ""
    return path, file, ext


def guess_content_type(key: str, default: str = "application/octet-stream") -> str:
    _, _, ext = split_filepath(key)
    return INFER_MIME_TYPE.get(ext, default)


def validate_key(key: str, name: str = "object_id") -> str:
    """Reject keys that cannot be mapped onto a directory hierarchy."""
    if not key:
        raise InvalidArgument(f"{name} is required")
    if key.startswith("/") or key.endswith("/"):
        raise InvalidArgument(f"{name} cannot start or end with '/': {key}")
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise InvalidArgument(f"{name} contains an empty or relative path segment: {key}")
    return key
