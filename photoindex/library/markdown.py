"""
Directory index files: an index.md per directory, starting with YAML front matter
that configures the directory (see DirectoryConfiguration).

Index files live in the blob store only; they need a live directory record to be
read, updated or deleted.
"""

import logging

import yaml
from pydantic import ValidationError

from photoindex.errors import InvalidArgument, NotFound
from photoindex.index.directories import create_or_restore_directory, get_directory
from photoindex.library import store_failures
from photoindex.library.photos import Sessions
from photoindex.models import DirectoryConfiguration, Markdown
from photoindex.objectstorage.blobstore import BlobNotFound, BlobStore
from photoindex.paths import directory_of, markdown_key, validate_key

MARKDOWN_CONTENT_TYPE = "text/markdown"
FRONT_MATTER_DELIMITER = "---"


def parse_front_matter(markdown: str) -> DirectoryConfiguration:
    """
    Parse and validate the YAML front matter of an index file.

    >>> parse_front_matter("---\\nsort_photos_in_chronological_order: true\\n---\\n# Holiday")
    DirectoryConfiguration(sort_photos_in_chronological_order=True)
    """
    if not markdown.startswith(FRONT_MATTER_DELIMITER):
        raise InvalidArgument("markdown must start with YAML front matter delimiter ---")
    content, sep, _ = markdown[len(FRONT_MATTER_DELIMITER) :].partition("\n" + FRONT_MATTER_DELIMITER)
    if not sep:
        raise InvalidArgument("missing closing YAML front matter delimiter ---")

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise InvalidArgument(f"invalid front matter: {e}")
    if data is None:
        return DirectoryConfiguration()
    if not isinstance(data, dict):
        raise InvalidArgument("invalid front matter: expected a mapping of settings")
    try:
        return DirectoryConfiguration.model_validate(data)
    except ValidationError as e:
        raise InvalidArgument(f"invalid front matter: {e}")


def _index_key(prefix: str) -> str:
    if not prefix or not prefix.strip("/"):
        raise InvalidArgument("prefix is required")
    return validate_key(markdown_key(prefix), "prefix")


async def _require_directory(sessions: Sessions, key: str, user_id: int) -> None:
    path = directory_of(key)
    with store_failures("markdown", key, user_id):
        async with sessions() as session:
            directory = await get_directory(session, path)
    if directory is None:
        raise NotFound(f"directory not found: {path}")


async def create_markdown(sessions: Sessions, store: BlobStore, user_id: int, prefix: str, markdown: str) -> Markdown:
    key = _index_key(prefix)
    if not markdown:
        raise InvalidArgument("markdown is required")
    configuration = parse_front_matter(markdown)

    with store_failures("create markdown", key, user_id):
        await store.put(key, markdown.encode("utf-8"), MARKDOWN_CONTENT_TYPE)
        async with sessions.begin() as session:
            await create_or_restore_directory(session, directory_of(key))

    logging.info(f"Created markdown file {key} for user {user_id}")
    return Markdown(object_id=key, configuration=configuration)


async def get_markdown(sessions: Sessions, store: BlobStore, user_id: int, prefix: str) -> Markdown:
    key = _index_key(prefix)
    await _require_directory(sessions, key, user_id)

    with store_failures("get markdown", key, user_id):
        try:
            data = await store.get(key)
        except BlobNotFound:
            raise NotFound(f"markdown file not found in storage: {key}")

    markdown = data.decode("utf-8")
    try:
        configuration = parse_front_matter(markdown)
    except InvalidArgument as e:
        # Files edited out-of-band are still returned, just without configuration
        logging.warning(f"Markdown file {key} has invalid front matter: {e}")
        configuration = None

    logging.info(f"Retrieved markdown file {key} for user {user_id}")
    return Markdown(object_id=key, markdown=markdown, configuration=configuration)


async def update_markdown(sessions: Sessions, store: BlobStore, user_id: int, prefix: str, markdown: str) -> Markdown:
    key = _index_key(prefix)
    if not markdown:
        raise InvalidArgument("markdown is required")
    configuration = parse_front_matter(markdown)
    await _require_directory(sessions, key, user_id)

    with store_failures("update markdown", key, user_id):
        await store.put(key, markdown.encode("utf-8"), MARKDOWN_CONTENT_TYPE)

    logging.info(f"Updated markdown file {key} for user {user_id}")
    return Markdown(object_id=key, configuration=configuration)


async def delete_markdown(sessions: Sessions, store: BlobStore, user_id: int, prefix: str) -> bool:
    key = _index_key(prefix)
    await _require_directory(sessions, key, user_id)

    with store_failures("delete markdown", key, user_id):
        try:
            await store.delete(key)
        except BlobNotFound:
            logging.warning(f"Markdown file {key} not found in the blob store, nothing to delete")

    logging.info(f"Deleted markdown file {key} for user {user_id}")
    return True
