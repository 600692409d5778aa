"""Async database engine and session management.

The record store handle (engine + session factory) is constructed once by
the application factory and kept on ``app.state``. Request handlers receive
a per-request AsyncSession through the ``get_db`` dependency, so tests can
substitute an in-memory store per test case.
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    """Turn on FK enforcement so sessions cascade with their user."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@dataclass(frozen=True)
class Database:
    """Process-wide handle to the record store.

    Attributes:
        engine: SQLAlchemy async engine.
        session_factory: Factory producing request-scoped sessions.
    """

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]

    async def dispose(self) -> None:
        """Close pooled connections."""
        await self.engine.dispose()


def create_database(url: str, *, echo: bool = False) -> Database:
    """Build the record store handle for a database URL.

    In-memory SQLite URLs get a StaticPool so every session shares the
    same connection (and therefore the same data).

    Args:
        url: SQLAlchemy async URL (e.g. "sqlite+aiosqlite:///./app.db").
        echo: Log emitted SQL.

    Returns:
        Database handle.
    """
    is_sqlite = url.startswith("sqlite")
    engine_kwargs: dict = {"echo": echo}
    if is_sqlite and ":memory:" in url:
        engine_kwargs["poolclass"] = StaticPool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    elif not is_sqlite:
        engine_kwargs["pool_pre_ping"] = True

    engine = create_async_engine(url, **engine_kwargs)
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return Database(engine=engine, session_factory=session_factory)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
