"""
Cursor based pagination over the photos of a user.

Order: time_taken descending (newest first), photos without time_taken last,
ties (and the undated bucket) broken by object_id ascending. The page token is
base64("<time_taken isoformat>|<object_id>"), or base64("null|<object_id>") when
the last photo on the page has no time_taken.
"""

import base64
import binascii
from datetime import datetime
from typing import NamedTuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from photoindex.errors import InvalidArgument
from photoindex.index.tables import PhotoObject, as_naive_utc, has_prefix
from photoindex.paths import INDEX_FILE_SUFFIX

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000
NULL_TIME = "null"
LIKE_ESCAPE = "\\"


class Cursor(NamedTuple):
    time_taken: datetime | None
    object_id: str


class Page(NamedTuple):
    items: list[PhotoObject]
    next_page_token: str | None


def clamp_page_size(page_size: int | None) -> int:
    if not page_size or page_size <= 0:
        return DEFAULT_PAGE_SIZE
    return min(page_size, MAX_PAGE_SIZE)


def encode_page_token(record: PhotoObject) -> str:
    time_part = record.time_taken.isoformat() if record.time_taken is not None else NULL_TIME
    return base64.b64encode(f"{time_part}|{record.object_id}".encode("utf-8")).decode("ascii")


def decode_page_token(token: str) -> Cursor:
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise InvalidArgument("invalid page token")
    time_part, sep, object_id = decoded.partition("|")
    if not sep:
        raise InvalidArgument("invalid page token format")
    if time_part == NULL_TIME:
        return Cursor(None, object_id)
    try:
        return Cursor(as_naive_utc(datetime.fromisoformat(time_part)), object_id)
    except ValueError:
        raise InvalidArgument("invalid page token time")


def _escape_like(value: str) -> str:
    return value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", LIKE_ESCAPE + "%").replace("_", LIKE_ESCAPE + "_")


async def list_page(
    session: AsyncSession,
    user_id: int,
    prefix: str = "",
    page_size: int | None = None,
    page_token: str | None = None,
) -> Page:
    """
    One page of live photos directly inside prefix. Photos in subdirectories of the prefix and
    markdown index files are filtered in the query, so every page is full except the last one.
    """
    page_size = clamp_page_size(page_size)
    escaped = _escape_like(prefix)

    query = select(PhotoObject).where(
        PhotoObject.user_id == user_id,
        PhotoObject.deleted_at.is_(None),
        has_prefix(PhotoObject.object_id, prefix),
        ~PhotoObject.object_id.like(escaped + "%/%", escape=LIKE_ESCAPE),
        ~func.lower(PhotoObject.object_id).like("%" + INDEX_FILE_SUFFIX),
    )

    if page_token:
        cursor = decode_page_token(page_token)
        if cursor.time_taken is None:
            query = query.where(and_(PhotoObject.time_taken.is_(None), PhotoObject.object_id > cursor.object_id))
        else:
            query = query.where(
                or_(
                    PhotoObject.time_taken < cursor.time_taken,
                    PhotoObject.time_taken.is_(None),
                    and_(PhotoObject.time_taken == cursor.time_taken, PhotoObject.object_id > cursor.object_id),
                )
            )

    query = query.order_by(PhotoObject.time_taken.desc().nulls_last(), PhotoObject.object_id.asc())
    # One extra row tells whether there is a next page
    rows = list((await session.execute(query.limit(page_size + 1))).scalars())

    if len(rows) > page_size:
        items = rows[:page_size]
        return Page(items, encode_page_token(items[-1]))
    return Page(rows, None)
