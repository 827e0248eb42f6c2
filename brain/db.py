
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine
from sqlalchemy.orm import DeclarativeBase
from .config import settings

# Lazy initialization: the engine is created on first use
_engine = None
_SessionLocal = None

SKIP_DB = settings.SKIP_DB

def get_engine():
    """Return the engine, creating it on first call."""
    global _engine
    if _engine is None and not SKIP_DB:
        _engine = create_async_engine(settings.database_url(), echo=False, pool_pre_ping=True)
    return _engine

def get_session_local():
    """Return the session factory, creating it on first call."""
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_engine()
        if engine is not None:
            _SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    return _SessionLocal

class Base(DeclarativeBase):
    pass

async def init_db(engine: AsyncEngine) -> None:
    """Create tables; on PostgreSQL also enable pgvector (and with it the HNSW index)."""
    from . import models  # noqa: F401  register tables on Base.metadata

    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _SessionLocal
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _SessionLocal = None
