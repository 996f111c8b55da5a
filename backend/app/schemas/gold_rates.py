"""
Gold rate schemas for GoldLedger.

**Naming Convention**:
- GR prefix: Gold-rate-related schemas
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from backend.app.db.models import GoldRate


class GRCreateItem(BaseModel):
    """
    DTO for publishing a new gold rate version.

    Used by POST /api/v1/gold-rates. effective_date defaults to now.
    """
    model_config = ConfigDict(extra="forbid")

    buy_price: Decimal = Field(..., ge=0, description="INR per gram applied to BUY trades")
    sell_price: Decimal = Field(..., ge=0, description="INR per gram applied to SELL trades")
    effective_date: Optional[datetime] = Field(default=None, description="When the rate becomes effective")


class GRReadItem(BaseModel):
    """DTO for reading a gold rate version."""
    model_config = ConfigDict(extra="forbid")

    id: int
    buy_price: Decimal
    sell_price: Decimal
    is_active: bool
    effective_date: datetime
    created_by: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db_model(cls, rate: GoldRate) -> 'GRReadItem':
        """Create GRReadItem from database GoldRate model."""
        return cls(
            id=rate.id,
            buy_price=rate.buy_price,
            sell_price=rate.sell_price,
            is_active=rate.is_active,
            effective_date=rate.effective_date,
            created_by=rate.created_by,
            created_at=rate.created_at,
            updated_at=rate.updated_at,
            )


class GRActiveSummary(BaseModel):
    buy_price: Decimal
    sell_price: Decimal
    effective_date: datetime


class GRStatistics(BaseModel):
    """Gold rate history overview."""
    active_rate: Optional[GRActiveSummary] = None
    total_historical_rates: int
    has_active_rate: bool
