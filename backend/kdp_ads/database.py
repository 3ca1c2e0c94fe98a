"""
Database handle and session management.
Uses PostgreSQL via asyncpg with SQLAlchemy 2 async engine.

The engine is owned by an explicitly constructed Database object: the app
creates one in its lifespan, stores it on app.state, and closes it on shutdown.
"""

import logging
import ssl
from typing import Optional
from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _get_connect_args(url: str) -> dict:
    """Enable SSL for hosted Postgres proxies (self-signed certs)."""
    if not url.startswith("postgresql"):
        return {}
    args = {"timeout": 30}  # Fail fast if DB unreachable
    if "rlwy.net" in url:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        args["ssl"] = ctx
    return args


class Database:
    """Async engine + session factory with an explicit open/close lifecycle."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    def connect(self) -> "Database":
        if self._engine is not None:
            return self
        engine_kwargs = {"echo": self.echo, "connect_args": _get_connect_args(self.url)}
        if self.url.startswith("postgresql"):
            engine_kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)
        self._engine = create_async_engine(self.url, **engine_kwargs)
        self._sessionmaker = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
        logger.info("Database engine created")
        return self

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Database engine disposed")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._sessionmaker

    async def init_db(self) -> None:
        """
        Create all tables defined in models.
        Uses create_all which is safe — it only creates tables that don't exist yet.
        Production schema changes go through Alembic.
        """
        # Import models to ensure they are registered with Base.metadata
        import kdp_ads.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(f"Database initialized with {len(Base.metadata.tables)} tables: "
                    f"{', '.join(Base.metadata.tables.keys())}")

    async def check_connection(self) -> bool:
        """Test database connectivity."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return False


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db(request: Request) -> AsyncSession:
    """Dependency that provides a database session with auto-commit/rollback."""
    async with get_database(request).sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
