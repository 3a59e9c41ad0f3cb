import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from photoindex import api
from photoindex.config import AuthOptions
from photoindex.connections import db, photoindex_connections
from photoindex.index.users import get_or_create_user
from tests.tools import MemoryBlobStore, photoindex_settings

TEST_USER = "test_user@example.org"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture()
async def setup(tmp_path, blobs):
    """A fresh sqlite index database and an empty in-memory blob store for every test"""
    with photoindex_settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'photoindex.db'}",
        auth=AuthOptions.no_auth,
        default_user=TEST_USER,
        host="http://localhost:3000",
        middlecat_url="http://mock_middlecat.net",
    ):
        async with photoindex_connections(blobstore=blobs):
            yield


@pytest.fixture()
def sessions(setup) -> async_sessionmaker[AsyncSession]:
    return db()


@pytest.fixture()
async def user_id(sessions) -> int:
    async with sessions.begin() as session:
        user = await get_or_create_user(session, TEST_USER)
    return user.id


@pytest.fixture()
async def other_user_id(sessions) -> int:
    async with sessions.begin() as session:
        user = await get_or_create_user(session, "someone_else@example.org")
    return user.id


@pytest.fixture()
async def client(setup):
    async with AsyncClient(transport=ASGITransport(app=api.app), base_url="http://test", follow_redirects=False) as client:
        yield client
