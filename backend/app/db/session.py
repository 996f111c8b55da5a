"""
Database session management.
Handles SQLite connection and session lifecycle with async support.

Ledger writes rely on conditional UPDATEs (version / status guards) rather
than on the isolation level of the backend, so the same code is correct on
SQLite (where SELECT ... FOR UPDATE is a no-op) and on server databases.
"""
from pathlib import Path
from typing import Optional

from sqlalchemy import event, Engine, create_engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from backend.app.config import get_settings

settings = get_settings()


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """
    Enable foreign key constraints for SQLite.
    Trades reference members, gold rates and admins; without this pragma
    SQLite would silently accept dangling ids.

    Note: This event listener applies to ALL sync engines (including the one backing async).
    """
    if "sqlite" not in type(dbapi_conn).__module__.lower():
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _ensure_sqlite_directory(db_url: str) -> None:
    """Create the parent directory of a relative SQLite database file."""
    if db_url.startswith("sqlite:///"):
        db_path = db_url.replace("sqlite:///", "")
        if not db_path.startswith("/"):  # relative path
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)


def _connect_args(db_url: str) -> dict:
    if db_url.startswith("sqlite"):
        return {"timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS}
    return {}


def get_sync_engine(db_url: Optional[str] = None) -> Engine:
    """
    Create and configure a SYNC database engine for non-async operations.

    Used by:
    - Alembic migrations
    - Maintenance scripts

    Returns:
        Engine: SQLAlchemy sync engine
    """
    db_url = db_url or settings.DATABASE_URL
    _ensure_sqlite_directory(db_url)

    return create_engine(
        db_url,
        echo=False,
        poolclass=NullPool,
        connect_args=_connect_args(db_url),
        )


def get_async_engine(db_url: Optional[str] = None) -> AsyncEngine:
    """
    Create and configure the async database engine.

    Args:
        db_url: Sync-style URL (sqlite:///...). Defaults to settings.DATABASE_URL.

    Returns:
        AsyncEngine: SQLAlchemy async engine configured for SQLite with aiosqlite
    """
    db_url = db_url or settings.DATABASE_URL
    _ensure_sqlite_directory(db_url)

    # Convert sqlite:/// to sqlite+aiosqlite:/// for async
    async_db_url = db_url.replace("sqlite:///", "sqlite+aiosqlite:///")

    return create_async_engine(
        async_db_url,
        echo=False,
        # NullPool for SQLite - each session gets its own connection
        poolclass=NullPool,
        connect_args=_connect_args(db_url),
        )


def get_session_factory(engine: Optional[AsyncEngine] = None) -> async_sessionmaker[AsyncSession]:
    """
    Build the session factory handed to TradeLedgerFacade.

    expire_on_commit=False keeps loaded rows readable after commit, so the
    facade can build response DTOs without another round trip.
    """
    return async_sessionmaker(engine or async_engine, expire_on_commit=False)


# Create engine instance
async_engine = get_async_engine()  # For FastAPI app (via get_session_factory)

