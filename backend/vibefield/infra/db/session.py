"""Database session dependency."""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from vibefield.infra.db import base


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session per request; tests override this dependency."""
    if base.AsyncSessionLocal is None:
        raise RuntimeError("Database engine is not configured (running under pytest without an override?)")
    async with base.AsyncSessionLocal() as session:
        yield session
