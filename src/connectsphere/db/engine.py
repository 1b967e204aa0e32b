"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.
Background consumers (notification worker, poll scheduler) open their own
sessions from the same factory, one per unit of work.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from connectsphere.config import settings


def _engine_kwargs(url: str) -> dict:
    # SQLite (local dev) has no server-side pool to size.
    if url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {"echo": settings.debug, "pool_size": 5, "max_overflow": 15}


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """Turn on FK enforcement for SQLite so ON DELETE CASCADE fires.

    Learn: PostgreSQL always enforces foreign keys; SQLite only does when
    asked per connection. Event deletion relies on the cascade.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(settings.database_url, **_engine_kwargs(settings.database_url))
if settings.database_url.startswith("sqlite"):
    enable_sqlite_foreign_keys(engine)

# Session factory — each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
