"""
Persistent Store Access
=======================
Async SQLAlchemy engine for the curation store (saved articles, reading
activity, assistant questions, generated articles and insight records).

Repositories hand Core statements to ``fetch_all`` / ``fetch_one`` /
``execute`` and get plain dicts or row counts back; they never touch
sessions directly. Driver failures surface as DatabaseQueryError, which
the callers treat as a failed store call.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, TypeVar

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from config.settings import DatabaseSettings
from core.exceptions import DatabaseConnectionError, DatabaseQueryError
from infrastructure.schema import metadata

T = TypeVar("T")


class DatabaseManager:
    """One engine per process; constructed by the container and shared by the repositories."""

    def __init__(self, settings: DatabaseSettings):
        self._settings = settings
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker] = None

    async def initialize(self) -> None:
        """Create the engine and verify the store answers."""
        if self._engine is not None:
            return

        self._engine = create_async_engine(
            self._settings.async_url,
            echo=self._settings.echo_sql,
            pool_size=self._settings.pool_size,
            max_overflow=self._settings.max_overflow,
            pool_timeout=self._settings.pool_timeout,
            pool_recycle=self._settings.pool_recycle,
            pool_pre_ping=True,
        )
        self._sessions = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)

        try:
            await self.health_check()
        except DatabaseConnectionError:
            await self.close()
            raise
        logger.info(f"Curation store ready | host={self._settings.host} | db={self._settings.database}")

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Curation store connections closed")

    async def health_check(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                return (await conn.execute(text("SELECT 1"))).scalar() == 1
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(
                "Curation store did not answer",
                context={"host": self._settings.host, "database": self._settings.database},
                cause=e,
            ) from e

    async def create_schema(self, drop_existing: bool = False) -> List[str]:
        """
        Create every pipeline table (idempotent).

        Args:
            drop_existing: Drop the tables first; destroys all stored data

        Returns:
            Names of the tables in the schema
        """
        async with self.engine.begin() as conn:
            if drop_existing:
                logger.warning("Dropping all curation tables before recreation")
                await conn.run_sync(metadata.drop_all)
            await conn.run_sync(metadata.create_all)
        return sorted(metadata.tables)

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseConnectionError("Curation store not initialized")
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session committed on success and rolled back on any error."""
        if self._sessions is None:
            raise DatabaseConnectionError("Curation store not initialized")

        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # =========================================================================
    # STATEMENT HELPERS
    # =========================================================================

    async def _run(self, statement: Any, read: Callable[[Result], T]) -> T:
        async with self.session() as session:
            try:
                return read(await session.execute(statement))
            except SQLAlchemyError as e:
                logger.error(f"Store statement failed: {e}")
                raise DatabaseQueryError(query_preview=str(statement), cause=e) from e

    async def fetch_all(self, statement: Any) -> List[Dict[str, Any]]:
        return await self._run(statement, lambda result: [dict(row) for row in result.mappings().all()])

    async def fetch_one(self, statement: Any) -> Optional[Dict[str, Any]]:
        def first(result: Result) -> Optional[Dict[str, Any]]:
            row = result.mappings().first()
            return dict(row) if row is not None else None

        return await self._run(statement, first)

    async def execute(self, statement: Any) -> int:
        """Run an INSERT/DELETE and return the affected row count."""
        return await self._run(statement, lambda result: result.rowcount or 0)


__all__ = ["DatabaseManager"]
