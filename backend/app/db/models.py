"""
Database models for GoldLedger.

All models use SQLModel (SQLAlchemy 2.x) with the following conventions:
- Decimal columns use Numeric(18, 6) for precision (grams and INR per gram)
- Timestamps in UTC (created_at, updated_at)
- Foreign keys enforced with PRAGMA foreign_keys=ON
- Invariants that can be stated in SQL are also enforced in SQL
  (CHECK constraints, partial unique index on the active gold rate)
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Column,
    Index,
    Integer,
    Numeric,
    Text,
    CheckConstraint,
    ForeignKey,
    event,
    text,
    )
from sqlmodel import Field, SQLModel

from backend.app.utils.datetime_utils import utcnow


# ============================================================================
# ENUMS
# ============================================================================

class TradeType(str, Enum):
    """
    Direction of a gold trade, seen from the member.

    - BUY: The member acquires gold. Created by an admin only, always COMPLETED
      on creation. Effect: ↑ gold_holdings by quantity.
    - SELL: The member gives gold back for cash. Member-initiated SELLs wait in
      PENDING for admin approval; admin-created SELLs complete immediately.
      Effect (once COMPLETED): ↓ gold_holdings by quantity.
    """
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(str, Enum):
    """
    Trade lifecycle status.

    Legal transitions:
    - PENDING -> COMPLETED (admin approves a SELL)
    - PENDING -> CANCELLED (admin rejects a SELL, no holdings effect)
    - COMPLETED -> CANCELLED (BUY only: reversal of the gold addition)

    COMPLETED and CANCELLED are otherwise terminal.
    """
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ActorRole(str, Enum):
    """Role of whoever initiated a trade."""
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


# ============================================================================
# MODELS
# ============================================================================

class Admin(SQLModel, table=True):
    """
    Back-office operator.

    Admins publish gold rates, create BUY trades and approve or reject
    member SELL requests. Credentials live with the authentication layer.
    """
    __tablename__ = "admins"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(nullable=False)
    email: str = Field(unique=True, index=True, nullable=False)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Member(SQLModel, table=True):
    """
    Customer holding gold.

    gold_holdings is a cached balance of the trade log: it must always equal
    sum(COMPLETED BUY) - sum(COMPLETED SELL) for the member, and it is only
    ever written by HoldingsLedger.

    version is the optimistic-concurrency token: every holdings write is an
    UPDATE ... WHERE version = <read version> that also bumps it, so two
    writers racing on the same member cannot both succeed.
    """
    __tablename__ = "members"
    __table_args__ = (
        CheckConstraint("gold_holdings >= 0", name="ck_members_gold_holdings_non_negative"),
        )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(nullable=False)
    email: str = Field(unique=True, index=True, nullable=False)
    phone: Optional[str] = Field(default=None)

    gold_holdings: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(18, 6), nullable=False, server_default=text("0")),
        )
    version: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default=text("0")))

    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class GoldRate(SQLModel, table=True):
    """
    One published version of the gold price pair (INR per gram).

    - buy_price: price applied to BUY trades
    - sell_price: price applied to SELL trades

    Rates are never updated or deleted; publishing a new version deactivates
    every other row in the same database transaction. The partial unique index
    on is_active makes a second active row impossible even if two publishers
    race: the loser fails at INSERT time.
    """
    __tablename__ = "gold_rates"
    __table_args__ = (
        CheckConstraint("buy_price >= 0", name="ck_gold_rates_buy_price_non_negative"),
        CheckConstraint("sell_price >= 0", name="ck_gold_rates_sell_price_non_negative"),
        Index(
            "uq_gold_rates_single_active",
            "is_active",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
            ),
        Index("idx_gold_rates_effective_created", "effective_date", "created_at"),
        )

    id: Optional[int] = Field(default=None, primary_key=True)

    buy_price: Decimal = Field(sa_column=Column(Numeric(18, 6), nullable=False))
    sell_price: Decimal = Field(sa_column=Column(Numeric(18, 6), nullable=False))
    is_active: bool = Field(default=True, nullable=False)
    effective_date: datetime = Field(default_factory=utcnow, nullable=False)

    created_by: int = Field(foreign_key="admins.id", nullable=False)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Trade(SQLModel, table=True):
    """
    A single gold BUY or SELL for one member.

    Pricing is frozen at creation:
    - rate_at_trade: buy_price for BUY, sell_price for SELL of the rate active
      when the trade was created
    - gold_rate_id: that rate version (historical reference)
    - total_amount: quantity * rate_at_trade, truncated to column scale

    initiated_by holds an admin id or a member id depending on
    initiated_by_role, so it carries no foreign key. approved_by is the admin
    who approved, rejected or reversed the trade.
    """
    __tablename__ = "trades"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_trades_quantity_positive"),
        CheckConstraint("rate_at_trade >= 0", name="ck_trades_rate_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_trades_total_amount_non_negative"),
        Index("idx_trades_member_created", "member_id", "created_at"),
        Index("idx_trades_status_created", "status", "created_at"),
        Index("idx_trades_type_created", "trade_type", "created_at"),
        )

    id: Optional[int] = Field(default=None, primary_key=True)

    member_id: int = Field(foreign_key="members.id", nullable=False, index=True)
    trade_type: TradeType = Field(nullable=False)

    quantity: Decimal = Field(sa_column=Column(Numeric(18, 6), nullable=False))
    rate_at_trade: Decimal = Field(sa_column=Column(Numeric(18, 6), nullable=False))
    total_amount: Decimal = Field(sa_column=Column(Numeric(18, 6), nullable=False))

    status: TradeStatus = Field(default=TradeStatus.COMPLETED, nullable=False)

    gold_rate_id: int = Field(foreign_key="gold_rates.id", nullable=False)
    initiated_by: int = Field(nullable=False)
    initiated_by_role: ActorRole = Field(nullable=False)
    approved_by: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("admins.id"), nullable=True),
        )

    notes: Optional[str] = Field(default=None, sa_column=Column(Text))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# EVENT LISTENERS
# ============================================================================

@event.listens_for(Admin, "before_update")
@event.listens_for(Member, "before_update")
@event.listens_for(GoldRate, "before_update")
@event.listens_for(Trade, "before_update")
def receive_before_update(mapper, connection, target):
    """Refresh updated_at on ORM-flushed updates."""
    target.updated_at = utcnow()
