"""
Trade schemas for GoldLedger.

DTOs for the trade state machine (create, status change, cancel) and its
read/statistics views.

**Naming Convention**:
- TR prefix: Trade-related schemas
- Item suffix: Single trade record

**Design Notes**:
- Quantities are grams, amounts are INR; both are Decimal end to end
- Status changes go through TRStatusUpdate; the only other write is cancel
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from backend.app.db.models import Trade, TradeType, TradeStatus, ActorRole

# Smallest tradable quantity (1 milligram)
MIN_TRADE_QUANTITY = Decimal("0.001")
NOTES_MAX_LENGTH = 500


# =============================================================================
# TRADE WRITE DTOs
# =============================================================================

class TRCreateItem(BaseModel):
    """
    DTO for creating a trade.

    Used by POST /api/v1/trades. The initiator comes from the caller identity,
    not from the body. For member callers member_id must be their own id.
    """
    model_config = ConfigDict(extra="forbid")

    member_id: int = Field(..., gt=0, description="Member whose holdings the trade affects")
    trade_type: TradeType = Field(..., description="BUY (admin only) or SELL")
    quantity: Decimal = Field(..., ge=MIN_TRADE_QUANTITY, description="Grams of gold")
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH, description="Optional notes")


class TRStatusUpdate(BaseModel):
    """DTO for approving (COMPLETED) or rejecting (CANCELLED) a PENDING trade."""
    model_config = ConfigDict(extra="forbid")

    status: TradeStatus = Field(..., description="Target status: COMPLETED or CANCELLED")
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH, description="Replaces the trade notes when given")


# =============================================================================
# TRADE READ DTOs
# =============================================================================

class TRReadItem(BaseModel):
    """DTO for reading a trade (response of every trade operation)."""
    model_config = ConfigDict(extra="forbid")

    id: int
    member_id: int
    trade_type: TradeType
    quantity: Decimal
    rate_at_trade: Decimal
    total_amount: Decimal
    status: TradeStatus
    gold_rate_id: int
    initiated_by: int
    initiated_by_role: ActorRole
    approved_by: Optional[int] = None
    notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db_model(cls, trade: Trade) -> 'TRReadItem':
        """Create TRReadItem from database Trade model."""
        return cls(
            id=trade.id,
            member_id=trade.member_id,
            trade_type=trade.trade_type,
            quantity=trade.quantity,
            rate_at_trade=trade.rate_at_trade,
            total_amount=trade.total_amount,
            status=trade.status,
            gold_rate_id=trade.gold_rate_id,
            initiated_by=trade.initiated_by,
            initiated_by_role=trade.initiated_by_role,
            approved_by=trade.approved_by,
            notes=trade.notes,
            created_at=trade.created_at,
            updated_at=trade.updated_at,
            )


class TRVolume(BaseModel):
    """Total grams and amount of COMPLETED trades of one type."""
    total_quantity: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")


class TRStatistics(BaseModel):
    """Trade counters, optionally scoped to one member."""
    member_id: Optional[int] = None

    total_trades: int
    completed_trades: int
    pending_trades: int
    cancelled_trades: int
    buy_trades: int
    sell_trades: int

    buy_volume: TRVolume
    sell_volume: TRVolume
