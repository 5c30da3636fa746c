"""Database engine, session factory and declarative base."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.exceptions import BookingError, ConflictError, StoreError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all models."""


class RecordSession(Session):
    """Sync session class behind every AsyncSession.

    The change feed listens for flush/commit events on this class only, so
    sessions created elsewhere (migrations, ad hoc scripts) stay silent.
    """


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Build a session factory bound to ``engine`` that feeds the change feed."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        sync_session_class=RecordSession,
        expire_on_commit=False,
    )


engine = create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a database session."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create all tables."""
    # Import models so they register with the metadata
    import app.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def unit_of_work(db: AsyncSession, action: str) -> AsyncIterator[None]:
    """Commit everything done inside the block, or roll all of it back.

    Core errors are re-raised unchanged. Store failures surface as
    ``StoreError`` and lost version races as ``ConflictError``.
    """
    try:
        yield
        await db.commit()
    except StoreError as e:
        await db.rollback()
        logger.error(f"{action} failed and was rolled back: {e.message}")
        raise
    except BookingError as e:
        await db.rollback()
        logger.warning(f"{action} rejected: {e.message}")
        raise
    except StaleDataError as e:
        await db.rollback()
        logger.warning(f"{action} lost a concurrent edit: {e}")
        raise ConflictError(f"{action} conflicts with a concurrent edit; reload and retry") from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"{action} failed: {e}", exc_info=True)
        raise StoreError(f"{action} failed: {e}") from e
