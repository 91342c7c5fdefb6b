from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from academic_ops.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """
    pool_pre_ping: check connection is alive before use (avoids "connection is closed" errors
    when DB or network closed idle connections).
    pool_recycle: discard connections after this many seconds to avoid stale connections.
    """
    options: Dict[str, Any] = {
        "echo": False,
        "future": True,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }
    if database_url.startswith("sqlite"):
        # Local runs: the same SQLite connection is handed between the event loop and aiosqlite's thread
        options["connect_args"] = {"check_same_thread": False}
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
