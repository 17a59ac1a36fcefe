"""
Database Session Management

Database owns the async engine and session factory. One instance is built
by the ServiceContainer at startup and shared by every service that touches
the durable store.

Lifecycle:
    db = Database(url)
    await db.create_all()      # schema bootstrap (tests, first start)
    async with db.session() as session:
        ...                    # committed on success, rolled back on error
    await db.dispose()
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import Insert, event, text
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.core.exceptions import ConfigurationError
from src.core.logging.logger import get_logger
from src.infrastructure.database.models import Base

logger = get_logger(__name__)


def _enable_sqlite_busy_timeout(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA busy_timeout = 5000")
    cursor.close()


class Database:
    """
    Async engine + session factory.

    Args:
        url: SQLAlchemy URL (postgresql+asyncpg://... or sqlite+aiosqlite:///...)
        echo: Log emitted SQL
        pool_size: Connection pool size (ignored for SQLite)
    """

    def __init__(self, url: str, echo: bool = False, pool_size: int = 10):
        self.url = url
        engine_kwargs: dict = {"echo": echo, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            engine_kwargs["pool_size"] = pool_size

        self._engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        if self.dialect == "sqlite":
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_busy_timeout)

        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

        logger.info("Database engine created", dialect=self.dialect)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    def insert_ignore(self, model: type[Base], conflict_columns: list[str]) -> Insert:
        """
        INSERT ... ON CONFLICT DO NOTHING for the engine's dialect.

        Raises:
            ConfigurationError: On a dialect without ON CONFLICT support
        """
        if self.dialect == "postgresql":
            return postgresql_insert(model).on_conflict_do_nothing(index_elements=conflict_columns)
        if self.dialect == "sqlite":
            return sqlite_insert(model).on_conflict_do_nothing(index_elements=conflict_columns)
        raise ConfigurationError(
            f"Insert-or-ignore is not supported on {self.dialect}",
            details={"dialect": self.dialect},
        )

    async def create_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured", tables=sorted(Base.metadata.tables))

    async def drop_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Transactional session: commit on success, rollback on any exception."""
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Database ping failed", error=str(e))
            return False

    async def dispose(self) -> None:
        await self._engine.dispose()
        logger.info("Database engine disposed")
