"""
Services package.
Business logic of the gold trade ledger.

Service Layer:
- RateStore: gold rate versions, single active rate
- HoldingsLedger: guarded holdings writes, reconciliation against the trade log
- TradeStateMachine: trade create / approve / reject / cancel
- TradeLedgerFacade: one transaction per call, bounded retry on conflicts
"""
from backend.app.services.errors import (
    LedgerError,
    LedgerErrorKind,
    NotFoundError,
    NoActiveRateError,
    InsufficientHoldingsError,
    InvalidStateTransitionError,
    CannotReverseError,
    ConflictError,
    InvalidTradeRequestError,
    StaleWriteError,
    )
from backend.app.services.holdings_ledger import HoldingsLedger
from backend.app.services.rate_store import RateStore
from backend.app.services.trade_ledger import TradeLedgerFacade
from backend.app.services.trade_state_machine import TradeStateMachine

__all__ = [
    "LedgerError",
    "LedgerErrorKind",
    "NotFoundError",
    "NoActiveRateError",
    "InsufficientHoldingsError",
    "InvalidStateTransitionError",
    "CannotReverseError",
    "ConflictError",
    "InvalidTradeRequestError",
    "StaleWriteError",
    "HoldingsLedger",
    "RateStore",
    "TradeLedgerFacade",
    "TradeStateMachine",
    ]
