"""
Engine and session factory for the fulfillment store.

Orders, returns, products, stock effects and the movement ledger share one
database. SQLite backs local runs and the test suite; Postgres (asyncpg)
backs deployments, where stock writes from concurrent order updates need
a pooled, pre-pinged connection.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ..models.base import FulfillmentServiceBase
from .settings import get_settings


def _engine_options(
    database_url: str, echo: bool, pool_size: int, max_overflow: int
) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": echo, "future": True}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"timeout": 60, "check_same_thread": False}
        if ":memory:" in database_url:
            # Every session must see the same in-memory database
            options["poolclass"] = StaticPool
        return options

    options.update(
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=45,
        pool_recycle=3600,
        pool_pre_ping=True,
        pool_reset_on_return="commit",
        connect_args={"command_timeout": 30, "server_settings": {"jit": "off"}},
    )
    return options


class FulfillmentDatabaseManager:
    """Owns the async engine and hands out sessions.

    Sessions keep attributes loaded after commit; stock writes re-read
    products explicitly instead.
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 40,
    ) -> None:
        self.async_engine = create_async_engine(
            database_url,
            **_engine_options(database_url, echo, pool_size, max_overflow),
        )
        self.async_session_maker = async_sessionmaker(
            bind=self.async_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
            autocommit=False,
        )

    async def create_tables(self) -> None:
        async with self.async_engine.begin() as conn:
            await conn.run_sync(
                FulfillmentServiceBase.metadata.create_all, checkfirst=True
            )

    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.async_session_maker() as session:
            yield session

    async def close(self) -> None:
        await self.async_engine.dispose()


settings = get_settings()
database_manager = FulfillmentDatabaseManager(
    database_url=settings.FULFILLMENT_DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in database_manager.get_async_session():
        yield session
