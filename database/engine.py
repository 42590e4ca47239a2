import logging
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import BigInteger, Integer, event

from core.config import settings

logger = logging.getLogger(__name__)


# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


def enum_values(enum_cls) -> list[str]:
    """Persist enum values (not member names) so raw SQL filters read naturally."""
    return [member.value for member in enum_cls]


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Build an async engine for the given URL.

    PostgreSQL (asyncpg) gets a sized pool. SQLite (aiosqlite) gets
    ``BEGIN IMMEDIATE`` transactions so concurrent writers serialize on the
    database lock instead of failing on upgrade from a read lock.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": 30},
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            # hand transaction control to the "begin" listener below
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


logger.info(f"Configuring database engine for {make_url(settings.database_url).render_as_string(hide_password=True)}")

db_engine = create_engine_for_url(settings.database_url, echo=settings.database_echo)


# Create async session maker to be used throughout the application
AsyncSessionLocal = create_session_factory(db_engine)


# Base class for declarative models
class Base(DeclarativeBase):
    pass


async def init_db(engine: AsyncEngine | None = None):
    """Create tables for every registered model."""
    # models register themselves on Base.metadata when imported
    import database.models  # noqa: F401

    async with (engine or db_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Function to close database connections
async def close_db():
    """Close database engine and connections."""
    await db_engine.dispose()
