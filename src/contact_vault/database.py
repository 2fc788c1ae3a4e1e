"""Database engine, declarative base, and repository base class.

Key exports:
- Base                 — SQLAlchemy declarative base for every ORM model
- VaultModel           — abstract base adding id, created_at, updated_at
- init_database(...)   — call at startup to create the engine and session factory
- close_database()     — call at shutdown to dispose the engine
- get_db_session()     — FastAPI dependency yielding a request-scoped session
- BaseRepository       — holds the session and model class for repositories
"""

import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Generic, TypeVar

from sqlalchemy import DateTime, Uuid
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from contact_vault.observability import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Declarative base shared by all contact-vault models."""


class VaultModel(Base):
    """Abstract model base with a UUID primary key and audit timestamps.

    Attributes:
        id: UUID primary key generated client-side.
        created_at: Row creation timestamp (UTC).
        updated_at: Last modification timestamp (UTC).
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


# Module-level engine and session factory, initialized by init_database()
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_database(
    database_url: str,
    pool_size: int = 5,
    echo: bool = False,
    create_schema: bool = False,
) -> AsyncEngine:
    """Initialize the database engine and session factory.

    Must be called once at application startup before any request is served.

    Args:
        database_url: SQLAlchemy async connection URL.
        pool_size: Connection pool size.
        echo: Log every SQL statement.
        create_schema: Create all tables that do not yet exist.

    Returns:
        The created AsyncEngine.
    """
    global _engine, _session_factory  # noqa: PLW0603

    logger.info("Initializing database engine", pool_size=pool_size)
    _engine = create_async_engine(database_url, pool_size=pool_size, echo=echo, pool_pre_ping=True)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    if create_schema:
        async with _engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    return _engine


async def close_database() -> None:
    """Dispose the database engine. Safe to call when it was never initialized."""
    global _engine, _session_factory  # noqa: PLW0603

    if _engine is not None:
        logger.info("Disposing database engine")
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session.

    The session is committed when the request handler returns and rolled
    back if it raises.

    Yields:
        AsyncSession bound to the primary database.

    Raises:
        RuntimeError: If init_database() has not been called yet.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database has not been initialized. Call init_database() in the application lifespan handler."
        )

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Base class for SQLAlchemy repositories.

    Args:
        session: The request-scoped async session.
        model: The ORM model class this repository manages.
    """

    def __init__(self, session: AsyncSession, model: type[ModelT]) -> None:
        self._session = session
        self._model = model

    async def add(self, instance: ModelT) -> ModelT:
        """Add an instance, flush it, and refresh server-populated columns.

        Args:
            instance: Transient ORM instance.

        Returns:
            The persisted instance.
        """
        self._session.add(instance)
        await self._session.flush()
        await self._session.refresh(instance)
        return instance
