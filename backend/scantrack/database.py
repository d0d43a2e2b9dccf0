"""
Database engine and sessions (async SQLAlchemy).
- SQLite goes through aiosqlite, PostgreSQL through asyncpg; both share the same AsyncSession API
- create_all only runs for SQLite; PostgreSQL schema is managed by Alembic
"""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from scantrack.config import settings


def normalize_database_url(url: str) -> str:
    """Hosted Postgres usually hands out postgres:// or postgresql://; async needs postgresql+asyncpg://."""
    url = str(url or "").strip()
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    if url.startswith("postgresql+psycopg2://"):
        return "postgresql+asyncpg://" + url[len("postgresql+psycopg2://"):]
    return url


db_url = normalize_database_url(settings.database_url)

engine = create_async_engine(
    db_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    if engine.dialect.name != "sqlite":
        return
    # local SQLite: create missing tables so a fresh checkout runs without migrations
    from scantrack import models  # noqa: F401  (registers tables on Base.metadata)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
