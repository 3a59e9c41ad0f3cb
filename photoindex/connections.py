import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncGenerator

from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from photoindex.config import get_settings
from photoindex.index.tables import Base
from photoindex.objectstorage.blobstore import BlobStore
from photoindex.objectstorage.s3bucket import S3BlobStore


class PhotoIndexConnections:
    engine: AsyncEngine | None
    sessions: async_sessionmaker[AsyncSession] | None
    blobstore: BlobStore | None
    s3_context_stack: AsyncExitStack | None

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        sessions: async_sessionmaker[AsyncSession] | None = None,
        blobstore: BlobStore | None = None,
        s3_context_stack: AsyncExitStack | None = None,
    ):
        self.engine = engine
        self.sessions = sessions
        self.blobstore = blobstore
        self.s3_context_stack = s3_context_stack


CONNECTIONS = PhotoIndexConnections()


@asynccontextmanager
async def photoindex_connections(blobstore: BlobStore | None = None) -> AsyncGenerator[None, None]:
    """
    The main context manager to start and stop connections used by photoindex.
    Always use this once (and only once):
        - For running the server: in the FastAPI lifespan
        - For tests: in the setup fixture in the tests (passing a blob store to use instead of S3)
        - For CLI commands: within the CLI command
    """
    try:
        await _start_database()
        if blobstore is not None:
            CONNECTIONS.blobstore = blobstore
        else:
            await _start_s3()
        yield
    finally:
        await _close_s3()
        await _close_database()


def db() -> async_sessionmaker[AsyncSession]:
    """
    Use this function to access the index database. Typical use:
        async with db().begin() as session:
            ...
    """
    if CONNECTIONS.sessions is None:
        raise ConnectionError("Index database connection not initialized")
    return CONNECTIONS.sessions


def blobstore() -> BlobStore:
    """
    Use this function to access the blob store.
    """
    if CONNECTIONS.blobstore is None:
        raise ConnectionError("Blob store not started")
    return CONNECTIONS.blobstore


def s3_enabled() -> bool:
    settings = get_settings()
    return all([settings.s3_host, settings.s3_access_key, settings.s3_secret_key])


async def create_tables() -> None:
    if CONNECTIONS.engine is None:
        raise ConnectionError("Index database connection not initialized")
    async with CONNECTIONS.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _start_database() -> None:
    settings = get_settings()
    logging.debug(f"Connecting with index database at {settings.database_url}")
    CONNECTIONS.engine = create_async_engine(settings.database_url, echo=settings.database_echo)
    CONNECTIONS.sessions = async_sessionmaker(CONNECTIONS.engine, class_=AsyncSession, expire_on_commit=False)
    await create_tables()


async def _close_database() -> None:
    if CONNECTIONS.engine is not None:
        await CONNECTIONS.engine.dispose()
    CONNECTIONS.engine = None
    CONNECTIONS.sessions = None


async def _start_s3() -> None:
    if s3_enabled() is False:
        logging.warning("S3 is not configured (photoindex_s3_host, _access_key, _secret_key); blob store unavailable")
        return None

    settings = get_settings()

    session = get_session()
    client = session.create_client(
        service_name="s3",
        endpoint_url=settings.s3_host,
        region_name=settings.s3_region,
        aws_access_key_id=settings.s3_access_key,
        aws_secret_access_key=settings.s3_secret_key,
        config=AioConfig(signature_version="s3v4"),
    )

    # client is an async context manager, so we use an AsyncExitStack to manage its lifetime
    CONNECTIONS.s3_context_stack = AsyncExitStack()
    s3_client = await CONNECTIONS.s3_context_stack.enter_async_context(client)
    store = S3BlobStore(s3_client, settings.s3_bucket, settings.s3_prefix)
    await store.ensure_bucket()
    CONNECTIONS.blobstore = store


async def _close_s3() -> None:
    if CONNECTIONS.blobstore is not None:
        await CONNECTIONS.blobstore.close()
    if CONNECTIONS.s3_context_stack is not None:
        await CONNECTIONS.s3_context_stack.aclose()
    CONNECTIONS.s3_context_stack = None
    CONNECTIONS.blobstore = None
