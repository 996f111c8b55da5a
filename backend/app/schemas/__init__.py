"""
Pydantic schemas for GoldLedger.

Used across the API and service layers to validate input and standardize
the data returned by the trade ledger.

**Organization by Domain**:
- trades.py: Trade create/status/read/statistics schemas (TR prefix)
- gold_rates.py: Gold rate version schemas (GR prefix)
- holdings.py: Holdings, reconciliation and dashboard schemas (HL prefix)

**Design Notes**:
- All models use Pydantic v2; input models forbid unknown fields
- Read models are built from DB rows with from_db_model()
"""
from backend.app.schemas.gold_rates import (
    GRCreateItem,
    GRReadItem,
    GRActiveSummary,
    GRStatistics,
    )
from backend.app.schemas.holdings import (
    HLMemberHoldings,
    HLReconcileItem,
    HLReconcileReport,
    HLDashboardStatistics,
    )
from backend.app.schemas.trades import (
    TRCreateItem,
    TRStatusUpdate,
    TRReadItem,
    TRVolume,
    TRStatistics,
    MIN_TRADE_QUANTITY,
    NOTES_MAX_LENGTH,
    )

__all__ = [
    # Gold rates
    "GRCreateItem",
    "GRReadItem",
    "GRActiveSummary",
    "GRStatistics",
    # Holdings
    "HLMemberHoldings",
    "HLReconcileItem",
    "HLReconcileReport",
    "HLDashboardStatistics",
    # Trades
    "TRCreateItem",
    "TRStatusUpdate",
    "TRReadItem",
    "TRVolume",
    "TRStatistics",
    "MIN_TRADE_QUANTITY",
    "NOTES_MAX_LENGTH",
    ]
