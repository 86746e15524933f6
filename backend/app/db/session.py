"""
Database engine and sessions.

PostgreSQL through asyncpg in deployments; any SQLAlchemy async URL works,
which is how the tests run on in-memory SQLite.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings

Base = declarative_base()


def build_engine(url: str = None):
    url = url or settings.database_url
    options = {"echo": settings.db_echo, "future": True}
    # SQLite has no queue pool to size
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **options)


engine = build_engine()

# Objects stay readable after commit; the position store builds views from them
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def create_tables(bind=None) -> None:
    """Create any missing tables for the registered models."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """FastAPI dependency yielding one session per request (or websocket)."""
    async with AsyncSessionLocal() as session:
        yield session
