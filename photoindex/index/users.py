from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from photoindex.index.tables import User, upsert


async def get_or_create_user(session: AsyncSession, username: str) -> User:
    stmt = upsert(session, User).values(username=username).on_conflict_do_nothing(index_elements=["username"])
    await session.execute(stmt)
    result = await session.execute(select(User).where(User.username == username))
    return result.scalar_one()


async def get_user(session: AsyncSession, username: str) -> User | None:
    result = await session.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()
