"""
Database Sessions
=================
Engine and session factory helpers shared by the services.
"""

from pathlib import Path
from typing import Tuple

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .models import Base


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def create_session_factory(database_url: str) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Create an async engine and its session factory."""
    _ensure_sqlite_directory(database_url)
    engine = create_async_engine(database_url, echo=False)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def init_models(database_url: str) -> None:
    """Create all tables if they do not exist yet."""
    engine, _ = create_session_factory(database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()
