"""
Database module exports.
"""
from backend.app.db.base import (
    SQLModel,
    # Enums
    TradeType,
    TradeStatus,
    ActorRole,
    # Models
    Admin,
    Member,
    GoldRate,
    Trade,
    )
from backend.app.db.session import get_sync_engine, get_async_engine, get_session_factory

__all__ = [
    "SQLModel",
    "get_sync_engine",  # For sync scripts (migrations, checks)
    "get_async_engine",  # For async FastAPI app
    "get_session_factory",  # For TradeLedgerFacade
    # Enums
    "TradeType",
    "TradeStatus",
    "ActorRole",
    # Models
    "Admin",
    "Member",
    "GoldRate",
    "Trade",
    ]
