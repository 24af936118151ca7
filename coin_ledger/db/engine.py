"""Coin Ledger - Async database engine and transaction provider."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from coin_ledger.core.config import Settings


class Database:
    """Connection pool plus session factory handed to the services.

    Lifecycle: open once at process start (FastAPI lifespan, Celery task run
    or script entry point) and call ``dispose()`` at shutdown. Services never
    create engines themselves; they receive ``session_factory``.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int | None = None,
        max_overflow: int | None = None,
    ) -> None:
        engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
        # SQLite (tests) uses a static pool without sizing options
        if pool_size is not None and not url.startswith("sqlite"):
            engine_kwargs["pool_size"] = pool_size
            engine_kwargs["max_overflow"] = max_overflow or 0

        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Build the pool described by application settings."""
        return cls(
            settings.database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )

    async def init_models(self) -> None:
        """Create all tables.

        Production schemas are managed by Alembic; this is for local runs and tests.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def dispose(self) -> None:
        """Close database connections.

        Call this on application shutdown.
        """
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an async database session that commits on success.

        Usage:
            async with database.session() as session:
                result = await session.execute(select(WalletAccount))
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
