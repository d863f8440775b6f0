import os
from sqlalchemy import MetaData, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sinco_maquinaria.core.config import settings

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    settings.DATABASE_URL
)

DATABASE_SCHEMA = os.getenv("DATABASE_SCHEMA", settings.DATABASE_SCHEMA)

metadata = MetaData(schema=DATABASE_SCHEMA)

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(DATABASE_URL, echo=False)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


async def ensure_schema(conn) -> None:
    """Create the service-specific schema if it does not exist (idempotent)."""
    await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {DATABASE_SCHEMA}"))


async def init_database() -> None:
    # Table modules register themselves on `metadata` at import time.
    import sinco_maquinaria.infrastructure.event_store  # noqa: F401
    import sinco_maquinaria.projections.auditoria  # noqa: F401

    async with get_engine().begin() as conn:
        await ensure_schema(conn)
        await conn.run_sync(metadata.create_all)
