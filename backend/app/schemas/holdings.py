"""
Holdings schemas for GoldLedger.

**Naming Convention**:
- HL prefix: Holdings-ledger schemas

The member's gold_holdings column is a cache of the trade log; the
reconciliation DTOs report how the cache compares to the value derived from
COMPLETED trades.
"""
from __future__ import annotations

from decimal import Decimal
from typing import List

from pydantic import BaseModel, computed_field


class HLMemberHoldings(BaseModel):
    member_id: int
    gold_holdings: Decimal


class HLReconcileItem(BaseModel):
    """Recorded vs derived holdings for one member."""
    member_id: int
    recorded: Decimal
    derived: Decimal
    repaired: bool = False

    @computed_field
    @property
    def drift(self) -> Decimal:
        """recorded - derived; zero when the cache agrees with the trade log."""
        return self.recorded - self.derived


class HLReconcileReport(BaseModel):
    """Outcome of a reconciliation pass."""
    checked: int
    drifted: int
    repaired: int
    items: List[HLReconcileItem]


class HLDashboardStatistics(BaseModel):
    """Back-office dashboard counters."""
    total_members: int
    total_gold_holdings: Decimal
    pending_sell_requests: int
