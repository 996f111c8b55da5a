"""
Trade State Machine for GoldLedger.

Validates and executes trade transitions:
- create: price the trade against the active gold rate, choose its status,
  and apply the holdings effect when it completes immediately
- update_status: approve (COMPLETED) or reject (CANCELLED) a PENDING trade
- cancel: reverse a COMPLETED BUY
- list_trades / list_for_member: read the trade log, newest first

Transition table:

    PENDING   -> COMPLETED   update_status (SELL approval, holdings -quantity)
    PENDING   -> CANCELLED   update_status (SELL rejection, no holdings effect)
    COMPLETED -> CANCELLED   cancel        (BUY only, holdings -quantity)

Any other transition raises InvalidStateTransitionError.

Design Notes:
- RateStore and HoldingsLedger are injected; by default they share the
  state machine's session, so the trade row and the holdings write land in
  one database transaction
- Status writes are guarded (WHERE status = <expected>), so two admins
  acting on the same trade cannot both succeed
- The caller (TradeLedgerFacade) is responsible for commit/rollback
"""
from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import Admin, Member, Trade, TradeType, TradeStatus, ActorRole
from backend.app.logging_config import get_logger
from backend.app.schemas.trades import TRStatistics, TRVolume, MIN_TRADE_QUANTITY, NOTES_MAX_LENGTH
from backend.app.services.errors import (
    NotFoundError,
    InsufficientHoldingsError,
    InvalidStateTransitionError,
    CannotReverseError,
    InvalidTradeRequestError,
    StaleWriteError,
    )
from backend.app.services.holdings_ledger import HoldingsLedger
from backend.app.services.rate_store import RateStore
from backend.app.utils.datetime_utils import utcnow
from backend.app.utils.decimal_utils import truncate_trade_amount, truncate_grams

logger = get_logger(__name__)


def holdings_delta(trade_type: TradeType, quantity: Decimal) -> Decimal:
    """Signed effect of a COMPLETED trade on the member's holdings."""
    return quantity if trade_type == TradeType.BUY else -quantity


class TradeStateMachine:
    """
    Service driving trade state.

    All methods are async and expect an AsyncSession.
    The caller is responsible for commit/rollback.
    """

    def __init__(
        self,
        session: AsyncSession,
        rate_store: Optional[RateStore] = None,
        ledger: Optional[HoldingsLedger] = None,
        ):
        self.session = session
        self.rate_store = rate_store or RateStore(session)
        self.ledger = ledger or HoldingsLedger(session)

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def get(self, trade_id: int) -> Trade:
        """Get a trade by ID."""
        trade = await self.session.get(Trade, trade_id)
        if trade is None:
            raise NotFoundError("Trade", trade_id)
        return trade

    async def _require_member(self, member_id: int) -> Member:
        member = await self.session.get(Member, member_id)
        if member is None:
            raise NotFoundError("Member", member_id)
        return member

    async def _require_admin(self, admin_id: int) -> Admin:
        admin = await self.session.get(Admin, admin_id)
        if admin is None:
            raise NotFoundError("Admin", admin_id)
        return admin

    @staticmethod
    def _validate_notes(notes: Optional[str]) -> None:
        if notes is not None and len(notes) > NOTES_MAX_LENGTH:
            raise InvalidTradeRequestError(f"Notes cannot exceed {NOTES_MAX_LENGTH} characters")

    async def _write_status(
        self,
        trade: Trade,
        expected: TradeStatus,
        new_status: TradeStatus,
        admin_id: int,
        notes: Optional[str] = None,
        ) -> None:
        """Status-guarded trade update: matches only if the trade is still in `expected`."""
        values = {"status": new_status, "approved_by": admin_id, "updated_at": utcnow()}
        if notes is not None:
            values["notes"] = notes

        result = await self.session.execute(
            update(Trade)
            .where(Trade.id == trade.id)
            .where(Trade.status == expected)
            .values(**values)
            )
        if result.rowcount != 1:
            raise StaleWriteError("trades", trade.id, guard=f"status={expected.value}")

        # Keep the in-session row consistent with what was written
        await self.session.refresh(trade)

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create(
        self,
        member_id: int,
        trade_type: TradeType,
        quantity: Decimal,
        notes: Optional[str],
        initiator_id: int,
        is_admin: bool,
        ) -> Trade:
        """
        Create a trade priced at the active gold rate.

        Status selection:
        - BUY: admin only, always COMPLETED (holdings +quantity)
        - SELL by admin: COMPLETED (holdings -quantity)
        - SELL by member: PENDING, awaiting admin approval

        Args:
            member_id: Member whose holdings the trade affects
            trade_type: BUY or SELL
            quantity: Grams, at least MIN_TRADE_QUANTITY
            notes: Optional free text (max 500 chars)
            initiator_id: Admin or member creating the trade
            is_admin: Whether the initiator is an admin

        Returns:
            The persisted Trade (id populated)

        Raises:
            NotFoundError: Member (or initiating admin) does not exist
            NoActiveRateError: No gold rate has been published
            InsufficientHoldingsError: SELL quantity exceeds current holdings
            InvalidTradeRequestError: Bad quantity/notes, or BUY by a non-admin
        """
        trade_type = TradeType(trade_type)
        quantity = Decimal(quantity)

        if quantity < MIN_TRADE_QUANTITY:
            raise InvalidTradeRequestError(
                f"Quantity must be at least {MIN_TRADE_QUANTITY} grams",
                quantity=quantity,
                )
        quantity = truncate_grams(quantity)
        self._validate_notes(notes)

        if trade_type == TradeType.BUY and not is_admin:
            raise InvalidTradeRequestError("BUY trades can only be created by an admin", initiator_id=initiator_id)

        await self._require_member(member_id)
        if is_admin:
            await self._require_admin(initiator_id)
        elif initiator_id != member_id:
            raise InvalidTradeRequestError(
                "Members can only create trades for themselves",
                initiator_id=initiator_id,
                member_id=member_id,
                )

        rate = await self.rate_store.get_active()
        rate_at_trade = rate.buy_price if trade_type == TradeType.BUY else rate.sell_price
        total_amount = truncate_trade_amount(quantity * rate_at_trade)

        if trade_type == TradeType.SELL:
            holdings = await self.ledger.get(member_id)
            if holdings < quantity:
                raise InsufficientHoldingsError(member_id=member_id, holdings=holdings, required=quantity)

        if trade_type == TradeType.BUY or is_admin:
            status = TradeStatus.COMPLETED
        else:
            status = TradeStatus.PENDING

        now = utcnow()
        trade = Trade(
            member_id=member_id,
            trade_type=trade_type,
            quantity=quantity,
            rate_at_trade=rate_at_trade,
            total_amount=total_amount,
            status=status,
            gold_rate_id=rate.id,
            initiated_by=initiator_id,
            initiated_by_role=ActorRole.ADMIN if is_admin else ActorRole.MEMBER,
            notes=notes,
            created_at=now,
            updated_at=now,
            )
        self.session.add(trade)
        await self.session.flush()  # Get ID

        if status == TradeStatus.COMPLETED:
            await self.ledger.adjust(member_id, holdings_delta(trade_type, quantity))

        logger.info(
            "Trade created",
            trade_id=trade.id,
            member_id=member_id,
            trade_type=trade_type,
            quantity=quantity,
            rate_at_trade=rate_at_trade,
            total_amount=total_amount,
            status=status,
            gold_rate_id=rate.id,
            )
        return trade

    # =========================================================================
    # UPDATE STATUS
    # =========================================================================

    async def update_status(
        self,
        trade_id: int,
        new_status: TradeStatus,
        admin_id: int,
        notes: Optional[str] = None,
        ) -> Trade:
        """
        Approve or reject a PENDING trade.

        - COMPLETED: re-checks holdings (they may have changed since the trade
          was requested) and applies the holdings effect
        - CANCELLED: no holdings effect, the trade never took effect

        Raises:
            NotFoundError: Trade, member or admin does not exist
            InvalidStateTransitionError: Trade is not PENDING, or target is PENDING
            InsufficientHoldingsError: Approving a SELL the member can no longer cover
        """
        new_status = TradeStatus(new_status)
        self._validate_notes(notes)
        trade = await self.get(trade_id)

        if trade.status == TradeStatus.COMPLETED:
            raise InvalidStateTransitionError(trade_id, "Cannot modify completed trade")
        if trade.status == TradeStatus.CANCELLED:
            raise InvalidStateTransitionError(trade_id, "Cannot modify cancelled trade")
        if new_status == TradeStatus.PENDING:
            raise InvalidStateTransitionError(trade_id, "Trade is already pending")

        await self._require_admin(admin_id)

        delta = holdings_delta(trade.trade_type, trade.quantity)
        if new_status == TradeStatus.COMPLETED and trade.trade_type == TradeType.SELL:
            holdings = await self.ledger.get(trade.member_id)
            if holdings < trade.quantity:
                raise InsufficientHoldingsError(member_id=trade.member_id, holdings=holdings, required=trade.quantity)

        await self._write_status(trade, TradeStatus.PENDING, new_status, admin_id, notes)

        if new_status == TradeStatus.COMPLETED:
            await self.ledger.adjust(trade.member_id, delta)

        logger.info(
            "Trade status updated",
            trade_id=trade.id,
            member_id=trade.member_id,
            trade_type=trade.trade_type,
            status=new_status,
            approved_by=admin_id,
            )
        return trade

    # =========================================================================
    # CANCEL (BUY REVERSAL)
    # =========================================================================

    async def cancel(self, trade_id: int, admin_id: int) -> Trade:
        """
        Reverse a COMPLETED BUY trade.

        The member must still hold at least the bought quantity; otherwise the
        gold has already been sold and the reversal is refused with
        CannotReverseError instead of driving holdings negative.

        Raises:
            NotFoundError: Trade, member or admin does not exist
            InvalidStateTransitionError: Trade is not a COMPLETED BUY
            CannotReverseError: Holdings are below the trade quantity
        """
        trade = await self.get(trade_id)

        if trade.trade_type != TradeType.BUY:
            raise InvalidStateTransitionError(trade_id, "Only BUY trades can be cancelled")
        if trade.status != TradeStatus.COMPLETED:
            raise InvalidStateTransitionError(trade_id, "Only completed trades can be cancelled")

        await self._require_admin(admin_id)

        def cannot_reverse(holdings: Decimal) -> CannotReverseError:
            return CannotReverseError(
                trade_id=trade.id,
                member_id=trade.member_id,
                holdings=holdings,
                quantity=trade.quantity,
                )

        holdings = await self.ledger.get(trade.member_id)
        if holdings < trade.quantity:
            raise cannot_reverse(holdings)

        await self._write_status(trade, TradeStatus.COMPLETED, TradeStatus.CANCELLED, admin_id)
        # A SELL committed since the check above is caught on the versioned read
        await self.ledger.adjust(trade.member_id, -trade.quantity, on_underflow=cannot_reverse)

        logger.info(
            "Trade cancelled",
            trade_id=trade.id,
            member_id=trade.member_id,
            quantity=trade.quantity,
            cancelled_by=admin_id,
            )
        return trade

    # =========================================================================
    # TRADE LOG
    # =========================================================================

    async def list_trades(
        self,
        member_id: Optional[int] = None,
        trade_type: Optional[TradeType] = None,
        status: Optional[TradeStatus] = None,
        ) -> List[Trade]:
        """Trades matching the optional filters, newest first."""
        stmt = select(Trade).order_by(Trade.created_at.desc(), Trade.id.desc())
        if member_id is not None:
            stmt = stmt.where(Trade.member_id == member_id)
        if trade_type is not None:
            stmt = stmt.where(Trade.trade_type == trade_type)
        if status is not None:
            stmt = stmt.where(Trade.status == status)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_member(
        self,
        member_id: int,
        trade_type: Optional[TradeType] = None,
        status: Optional[TradeStatus] = None,
        ) -> List[Trade]:
        """
        A member's trade history, newest first.

        Raises:
            NotFoundError: Member does not exist
        """
        await self._require_member(member_id)
        return await self.list_trades(member_id=member_id, trade_type=trade_type, status=status)

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def count_pending_sells(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Trade)
            .where(Trade.trade_type == TradeType.SELL)
            .where(Trade.status == TradeStatus.PENDING)
            )
        return result.scalar_one()

    async def get_statistics(self, member_id: Optional[int] = None) -> TRStatistics:
        """
        Trade counters and COMPLETED volumes, optionally for a single member.

        Volumes are summed on the Decimal values read back from the database.
        """
        stmt = select(Trade.trade_type, Trade.status, Trade.quantity, Trade.total_amount)
        if member_id is not None:
            await self._require_member(member_id)
            stmt = stmt.where(Trade.member_id == member_id)

        rows = (await self.session.execute(stmt)).all()

        volumes = {TradeType.BUY: TRVolume(), TradeType.SELL: TRVolume()}
        for trade_type, status, quantity, total_amount in rows:
            if status == TradeStatus.COMPLETED:
                volume = volumes[trade_type]
                volume.total_quantity += quantity
                volume.total_amount += total_amount

        return TRStatistics(
            member_id=member_id,
            total_trades=len(rows),
            completed_trades=sum(1 for r in rows if r.status == TradeStatus.COMPLETED),
            pending_trades=sum(1 for r in rows if r.status == TradeStatus.PENDING),
            cancelled_trades=sum(1 for r in rows if r.status == TradeStatus.CANCELLED),
            buy_trades=sum(1 for r in rows if r.trade_type == TradeType.BUY),
            sell_trades=sum(1 for r in rows if r.trade_type == TradeType.SELL),
            buy_volume=volumes[TradeType.BUY],
            sell_volume=volumes[TradeType.SELL],
            )
