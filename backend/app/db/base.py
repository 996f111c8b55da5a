"""
Database base module.
SQLModel base classes and metadata.
Import all models here so Alembic can detect them.
"""
from sqlmodel import SQLModel

# Import all models so Alembic can detect them
from backend.app.db.models import (
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

__all__ = [
    "SQLModel",
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
