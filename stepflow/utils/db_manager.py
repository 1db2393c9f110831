"""
Database manager for Stepflow.

Owns the async engine and session factory, created lazily from settings.
"""

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from ..settings import DatabaseDriver, settings
from ..utils.logger import logger


def _pydantic_json_serializer(obj: Any) -> str:
    """JSON serializer that handles pydantic models stored in JSON columns."""

    def default(o: Any) -> Any:
        if hasattr(o, "model_dump"):
            return o.model_dump(mode="json")
        raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")

    return json.dumps(obj, default=default)


class DatabaseManager:
    """Manages the async engine and sessions without module-level globals leaking state."""

    def __init__(self, database_url: str | None = None) -> None:
        self._database_url = database_url
        self._async_engine: AsyncEngine | None = None
        self._async_session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def database_url(self) -> str:
        return self._database_url or settings.database_url

    def _create_async_engine(self) -> AsyncEngine:
        """Create and configure the asynchronous database engine."""
        url = self.database_url

        if url.startswith(DatabaseDriver.SQLITE.value):
            engine = create_async_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool if settings.debug else None,
                echo=settings.debug,
                json_serializer=_pydantic_json_serializer,
            )
        else:
            engine = create_async_engine(
                url,
                echo=settings.debug,
                pool_size=20,
                max_overflow=0,
                json_serializer=_pydantic_json_serializer,
            )

        logger.info(f"Async database engine created: {url.split('@')[-1]}")
        return engine

    @property
    def async_engine(self) -> AsyncEngine:
        """Get or create the asynchronous database engine."""
        if self._async_engine is None:
            self._async_engine = self._create_async_engine()
        return self._async_engine

    @property
    def async_session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create the async session factory."""
        if self._async_session_factory is None:
            self._async_session_factory = async_sessionmaker(
                self.async_engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._async_session_factory

    async def create_db_and_tables_async(self) -> None:
        """Create database tables asynchronously."""
        # Register table models on SQLModel.metadata
        from .. import models  # noqa: F401

        logger.info("Creating database tables (async)...")
        async with self.async_engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Database tables created (async)")

    @asynccontextmanager
    async def get_async_session_context(self) -> AsyncGenerator[AsyncSession]:
        """
        Get an async database session as a context manager.

        Usage:
            async with db_manager.get_async_session_context() as session:
                repo = PipelineRepository(session)

        Yields:
            AsyncSession: SQLModel async session
        """
        async with self.async_session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                logger.error(f"Database error: {e}")
                await session.rollback()
                raise

    async def get_async_session(self) -> AsyncGenerator[AsyncSession]:
        """Yield a session for use as a FastAPI dependency."""
        async with self.get_async_session_context() as session:
            yield session

    async def close(self) -> None:
        """Close all database connections."""
        if self._async_engine:
            await self._async_engine.dispose()
            self._async_engine = None
            self._async_session_factory = None
            logger.info("Async database engine disposed")

    def __repr__(self) -> str:
        return f"<DatabaseManager(initialized={self._async_engine is not None})>"


db_manager = DatabaseManager()
