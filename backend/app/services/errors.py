"""
Error taxonomy for the trade / holdings ledger.

Every failure the ledger can report is a LedgerError subclass carrying a
LedgerErrorKind, so callers (the facade, the API layer, tests) branch on
`error.kind` instead of matching message text.

StaleWriteError is not part of the public taxonomy: it signals that a
guarded UPDATE lost a race and the whole unit of work should be retried.
The facade turns retry exhaustion into ConflictError.
"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class LedgerErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    NO_ACTIVE_RATE = "NO_ACTIVE_RATE"
    INSUFFICIENT_HOLDINGS = "INSUFFICIENT_HOLDINGS"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    CANNOT_REVERSE = "CANNOT_REVERSE"
    CONFLICT = "CONFLICT"
    INVALID_REQUEST = "INVALID_REQUEST"


class LedgerError(Exception):
    """Base class for ledger business failures."""

    kind: LedgerErrorKind

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = context
        super().__init__(message)


class NotFoundError(LedgerError):
    """Raised when a member, admin, trade or gold rate does not exist."""
    kind = LedgerErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


class NoActiveRateError(LedgerError):
    """Raised when a trade needs pricing and no gold rate has been published."""
    kind = LedgerErrorKind.NO_ACTIVE_RATE

    def __init__(self, message: str = "No active gold rate found. Please set a gold rate first."):
        super().__init__(message)


class InsufficientHoldingsError(LedgerError):
    """Raised when a SELL (or a holdings adjustment) would take a member below zero."""
    kind = LedgerErrorKind.INSUFFICIENT_HOLDINGS

    def __init__(self, member_id: int, holdings: Decimal, required: Decimal):
        self.member_id = member_id
        self.holdings = holdings
        self.required = required
        super().__init__(
            f"Insufficient gold holdings. Member has {holdings}g but trade requires {required}g",
            member_id=member_id,
            holdings=holdings,
            required=required,
            )


class InvalidStateTransitionError(LedgerError):
    """Raised for a transition the trade state machine does not allow."""
    kind = LedgerErrorKind.INVALID_STATE_TRANSITION

    def __init__(self, trade_id: int, message: str):
        self.trade_id = trade_id
        super().__init__(message, trade_id=trade_id)


class CannotReverseError(LedgerError):
    """Raised when cancelling a BUY would take the member's holdings below zero."""
    kind = LedgerErrorKind.CANNOT_REVERSE

    def __init__(self, trade_id: int, member_id: int, holdings: Decimal, quantity: Decimal):
        self.trade_id = trade_id
        self.member_id = member_id
        self.holdings = holdings
        self.quantity = quantity
        super().__init__(
            f"Cannot cancel: Member only has {holdings}g but trade added {quantity}g. "
            f"They may have already sold this gold.",
            trade_id=trade_id,
            member_id=member_id,
            holdings=holdings,
            quantity=quantity,
            )


class ConflictError(LedgerError):
    """Raised when concurrent writers kept invalidating an operation and retries ran out."""
    kind = LedgerErrorKind.CONFLICT

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} conflicted with concurrent updates after {attempts} attempts",
            operation=operation,
            attempts=attempts,
            )


class InvalidTradeRequestError(LedgerError):
    """Raised for well-typed input the ledger refuses (bad quantity, BUY by a member, ...)."""
    kind = LedgerErrorKind.INVALID_REQUEST


class StaleWriteError(Exception):
    """
    A guarded UPDATE matched no row: someone else changed the row since it was read.

    Transient by nature; the facade rolls back and retries the operation.
    """

    def __init__(self, table: str, row_id: Any, guard: Optional[str] = None):
        self.table = table
        self.row_id = row_id
        self.guard = guard
        super().__init__(f"Stale write on {table} {row_id}" + (f" ({guard})" if guard else ""))
