from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from loguru import logger

# Base model
Base = declarative_base()


class Database:
    """Engine and session factory for one process.

    Constructed at startup and handed to the app; ``init`` must run before
    serving and ``close`` on shutdown.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.lower().startswith("sqlite")

    async def init(self) -> None:
        """Create the engine and the tables"""
        if self._engine is None:
            if self.is_sqlite:
                self._engine = create_async_engine(self.url, echo=self._echo)
            else:
                self._engine = create_async_engine(
                    self.url,
                    pool_size=5,
                    max_overflow=10,
                    pool_pre_ping=True,
                    pool_recycle=3600,
                    echo=self._echo,
                )
            self._sessionmaker = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )

        # models must be imported so their tables are registered on Base
        import app.domain.auth.models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database ready")

    async def close(self) -> None:
        """Close database connections"""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            logger.info("Database connections closed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that is rolled back if the request fails"""
        if self._sessionmaker is None:
            raise RuntimeError("Database is not initialised")
        async with self._sessionmaker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
