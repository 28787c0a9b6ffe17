from __future__ import annotations

import os
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

DATABASE_URL = os.getenv("NEOCALC_DB_URL", "sqlite+aiosqlite:///./neocalc.db")

Base = declarative_base()

# sqlite connections are cheap; NullPool avoids sharing one across event loops
engine = create_async_engine(DATABASE_URL, poolclass=NullPool)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create all tables on `bind` (defaults to the module engine)."""
    from . import models  # noqa: F401  registers the tables on Base.metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
