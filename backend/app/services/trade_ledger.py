"""
Trade Ledger Facade for GoldLedger.

Public entry point of the ledger, used by the API layer. Every call is one
unit of work:

    session = session_factory()
    async with session.begin():          # commit on success, rollback on error
        RateStore / HoldingsLedger / TradeStateMachine on that session
    return read DTO

Concurrency control:
- Writes are guarded (member version, trade status, single-active-rate
  index); a lost race surfaces as StaleWriteError, an IntegrityError from the
  rate index, or a SQLite "database is locked" OperationalError
- Those transient failures roll the unit back and re-run it from scratch, up
  to max_retries times with linear backoff; on exhaustion ConflictError is
  raised
- Business errors (LedgerError) are never retried
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

import structlog
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.config import get_settings
from backend.app.db.models import TradeType, TradeStatus
from backend.app.logging_config import get_logger
from backend.app.schemas.gold_rates import GRReadItem, GRStatistics
from backend.app.schemas.holdings import HLMemberHoldings, HLReconcileReport, HLDashboardStatistics
from backend.app.schemas.trades import TRReadItem, TRStatistics
from backend.app.services.errors import ConflictError, LedgerError, StaleWriteError
from backend.app.services.holdings_ledger import HoldingsLedger
from backend.app.services.rate_store import RateStore
from backend.app.services.trade_state_machine import TradeStateMachine

T = TypeVar("T")

logger = get_logger(__name__)

_LOCK_MESSAGES = ("database is locked", "database table is locked", "busy")


def is_transient_error(exc: BaseException, extra: Tuple[Type[BaseException], ...] = ()) -> bool:
    """
    Classify a failure as a lost concurrency race.

    Args:
        exc: Exception raised by the unit of work
        extra: Additional exception types transient for this operation only
            (IntegrityError while activating a gold rate)
    """
    if isinstance(exc, LedgerError):
        return False
    if isinstance(exc, StaleWriteError):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig).lower()
        return any(m in message for m in _LOCK_MESSAGES)
    return isinstance(exc, extra)


class TradeLedgerFacade:
    """
    Transactional facade over RateStore, HoldingsLedger and TradeStateMachine.

    Holds no session of its own: each call opens one from the injected
    factory, so the facade can be shared across concurrent requests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_retries: Optional[int] = None,
        retry_backoff_ms: Optional[int] = None,
        ):
        settings = get_settings()
        self.session_factory = session_factory
        self.max_retries = settings.TRADE_CONFLICT_MAX_RETRIES if max_retries is None else max_retries
        self.retry_backoff_ms = settings.TRADE_CONFLICT_BACKOFF_MS if retry_backoff_ms is None else retry_backoff_ms

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    async def _run(
        self,
        operation: str,
        fn: Callable[[AsyncSession], Awaitable[T]],
        transient: Tuple[Type[BaseException], ...] = (),
        **context,
        ) -> T:
        """
        Run fn inside one database transaction, retrying transient failures.

        fn receives the session and must build its return value (a DTO)
        before returning, while the rows it loaded are still attached.

        Raises:
            LedgerError: Business failure raised by fn (never retried)
            ConflictError: Transient failures persisted past max_retries
        """
        attempts = self.max_retries + 1
        with structlog.contextvars.bound_contextvars(operation=operation, **context):
            for attempt in range(1, attempts + 1):
                try:
                    async with self.session_factory() as session:
                        async with session.begin():
                            return await fn(session)
                except LedgerError as exc:
                    logger.warning("Ledger operation rejected", error=exc.kind, detail=exc.message)
                    raise
                except Exception as exc:
                    if not is_transient_error(exc, transient):
                        raise
                    if attempt == attempts:
                        logger.error("Ledger operation conflicted, retries exhausted", attempts=attempt, error=str(exc))
                        raise ConflictError(operation, attempt) from exc

                    delay_ms = self.retry_backoff_ms * attempt
                    logger.warning(
                        "Ledger operation conflicted, retrying",
                        attempt=attempt,
                        max_attempts=attempts,
                        delay_ms=delay_ms,
                        error=str(exc),
                        )
                    await asyncio.sleep(delay_ms / 1000)

        # Unreachable: the loop either returns or raises
        raise ConflictError(operation, attempts)

    # =========================================================================
    # TRADES
    # =========================================================================

    async def create_trade(
        self,
        member_id: int,
        trade_type: TradeType,
        quantity: Decimal,
        notes: Optional[str],
        initiator_id: int,
        is_admin: bool,
        ) -> TRReadItem:
        """Create a trade at the active gold rate (see TradeStateMachine.create)."""
        async def work(session: AsyncSession) -> TRReadItem:
            trade = await TradeStateMachine(session).create(
                member_id=member_id,
                trade_type=trade_type,
                quantity=quantity,
                notes=notes,
                initiator_id=initiator_id,
                is_admin=is_admin,
                )
            return TRReadItem.from_db_model(trade)

        return await self._run(
            "create_trade",
            work,
            member_id=member_id,
            trade_type=trade_type,
            initiator_id=initiator_id,
            is_admin=is_admin,
            )

    async def update_trade_status(
        self,
        trade_id: int,
        new_status: TradeStatus,
        admin_id: int,
        notes: Optional[str] = None,
        ) -> TRReadItem:
        """Approve or reject a PENDING trade."""
        async def work(session: AsyncSession) -> TRReadItem:
            trade = await TradeStateMachine(session).update_status(trade_id, new_status, admin_id, notes)
            return TRReadItem.from_db_model(trade)

        return await self._run("update_trade_status", work, trade_id=trade_id, new_status=new_status, admin_id=admin_id)

    async def cancel_trade(self, trade_id: int, admin_id: int) -> TRReadItem:
        """Reverse a COMPLETED BUY trade."""
        async def work(session: AsyncSession) -> TRReadItem:
            trade = await TradeStateMachine(session).cancel(trade_id, admin_id)
            return TRReadItem.from_db_model(trade)

        return await self._run("cancel_trade", work, trade_id=trade_id, admin_id=admin_id)

    async def get_trade(self, trade_id: int) -> TRReadItem:
        async def work(session: AsyncSession) -> TRReadItem:
            return TRReadItem.from_db_model(await TradeStateMachine(session).get(trade_id))

        return await self._run("get_trade", work, trade_id=trade_id)

    async def get_trade_statistics(self, member_id: Optional[int] = None) -> TRStatistics:
        async def work(session: AsyncSession) -> TRStatistics:
            return await TradeStateMachine(session).get_statistics(member_id)

        return await self._run("get_trade_statistics", work, member_id=member_id)

    async def list_trades(
        self,
        member_id: Optional[int] = None,
        trade_type: Optional[TradeType] = None,
        status: Optional[TradeStatus] = None,
        ) -> List[TRReadItem]:
        """The trade log across all members, newest first."""
        async def work(session: AsyncSession) -> List[TRReadItem]:
            trades = await TradeStateMachine(session).list_trades(member_id, trade_type, status)
            return [TRReadItem.from_db_model(t) for t in trades]

        return await self._run("list_trades", work, member_id=member_id, trade_type=trade_type, status=status)

    async def list_member_trades(
        self,
        member_id: int,
        trade_type: Optional[TradeType] = None,
        status: Optional[TradeStatus] = None,
        ) -> List[TRReadItem]:
        """One member's trade history, newest first (NotFound for unknown members)."""
        async def work(session: AsyncSession) -> List[TRReadItem]:
            trades = await TradeStateMachine(session).list_for_member(member_id, trade_type, status)
            return [TRReadItem.from_db_model(t) for t in trades]

        return await self._run("list_member_trades", work, member_id=member_id)

    # =========================================================================
    # GOLD RATES
    # =========================================================================

    async def create_gold_rate_version(
        self,
        buy_price: Decimal,
        sell_price: Decimal,
        admin_id: int,
        effective_date: Optional[datetime] = None,
        ) -> GRReadItem:
        """
        Publish a new gold rate, superseding the active one.

        A concurrent publisher can win the single-active-rate index between
        our deactivation and insert; that IntegrityError is retried like a
        stale write.
        """
        async def work(session: AsyncSession) -> GRReadItem:
            rate = await RateStore(session).create_version(
                buy_price=buy_price,
                sell_price=sell_price,
                created_by=admin_id,
                effective_date=effective_date,
                )
            return GRReadItem.from_db_model(rate)

        return await self._run("create_gold_rate_version", work, transient=(IntegrityError,), admin_id=admin_id)

    async def get_active_gold_rate(self) -> GRReadItem:
        async def work(session: AsyncSession) -> GRReadItem:
            return GRReadItem.from_db_model(await RateStore(session).get_active())

        return await self._run("get_active_gold_rate", work)

    async def get_gold_rate(self, rate_id: int) -> GRReadItem:
        async def work(session: AsyncSession) -> GRReadItem:
            return GRReadItem.from_db_model(await RateStore(session).get_by_id(rate_id))

        return await self._run("get_gold_rate", work, gold_rate_id=rate_id)

    async def get_gold_rate_statistics(self) -> GRStatistics:
        async def work(session: AsyncSession) -> GRStatistics:
            return await RateStore(session).get_statistics()

        return await self._run("get_gold_rate_statistics", work)

    async def list_gold_rates(self) -> List[GRReadItem]:
        """Rate history, newest first."""
        async def work(session: AsyncSession) -> List[GRReadItem]:
            return [GRReadItem.from_db_model(r) for r in await RateStore(session).list_versions()]

        return await self._run("list_gold_rates", work)

    # =========================================================================
    # HOLDINGS
    # =========================================================================

    async def get_member_holdings(self, member_id: int) -> HLMemberHoldings:
        async def work(session: AsyncSession) -> HLMemberHoldings:
            holdings = await HoldingsLedger(session).get(member_id)
            return HLMemberHoldings(member_id=member_id, gold_holdings=holdings)

        return await self._run("get_member_holdings", work, member_id=member_id)

    async def get_dashboard_statistics(self) -> HLDashboardStatistics:
        """Member count, total gold held and SELL requests awaiting approval."""
        async def work(session: AsyncSession) -> HLDashboardStatistics:
            total_members, total_holdings = await HoldingsLedger(session).get_totals()
            pending = await TradeStateMachine(session).count_pending_sells()
            return HLDashboardStatistics(
                total_members=total_members,
                total_gold_holdings=total_holdings,
                pending_sell_requests=pending,
                )

        return await self._run("get_dashboard_statistics", work)

    async def reconcile_holdings(self, member_id: Optional[int] = None, repair: bool = False) -> HLReconcileReport:
        """Audit holdings against the trade log, optionally repairing drift."""
        async def work(session: AsyncSession) -> HLReconcileReport:
            return await HoldingsLedger(session).reconcile(member_id=member_id, repair=repair)

        return await self._run("reconcile_holdings", work, member_id=member_id, repair=repair)
