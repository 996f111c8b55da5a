"""
Holdings Ledger for GoldLedger.

The only writer of Member.gold_holdings. The column is a cache of the trade
log (sum of COMPLETED BUY minus sum of COMPLETED SELL); this module keeps it
in step with trade state and can audit or repair it against the log.

Design Notes:
- adjust() is a read-check-write primitive meant to run inside the same
  database transaction as the trade status write that triggers it
- Writes are guarded by the member's version column:
      UPDATE members SET gold_holdings=:new, version=:v+1
      WHERE id=:id AND version=:v
  A zero row count means another transaction committed in between;
  StaleWriteError is raised and the facade retries the whole unit of work
- The read uses SELECT ... FOR UPDATE where the backend supports row locks
  (ignored on SQLite, where the version guard alone serializes writers)
"""
from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import Member, Trade, TradeType, TradeStatus
from backend.app.logging_config import get_logger
from backend.app.schemas.holdings import HLReconcileItem, HLReconcileReport
from backend.app.services.errors import LedgerError, NotFoundError, InsufficientHoldingsError, StaleWriteError
from backend.app.utils.datetime_utils import utcnow
from backend.app.utils.decimal_utils import truncate_grams

logger = get_logger(__name__)

ZERO = Decimal("0")


class HoldingsLedger:
    """
    Atomic access to members' gold balances.

    All methods are async and expect an AsyncSession.
    The caller is responsible for commit/rollback.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def _read_row(self, member_id: int, for_update: bool = False) -> Tuple[Decimal, int]:
        """Return (gold_holdings, version) straight from the database."""
        stmt = select(Member.gold_holdings, Member.version).where(Member.id == member_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Member", member_id)
        return row.gold_holdings, row.version

    async def get(self, member_id: int) -> Decimal:
        """Current holdings (grams) of a member."""
        holdings, _ = await self._read_row(member_id)
        return holdings

    async def get_totals(self) -> Tuple[int, Decimal]:
        """(number of members, sum of all holdings) for the dashboard."""
        result = await self.session.execute(select(Member.gold_holdings))
        holdings = result.scalars().all()
        return len(holdings), sum(holdings, ZERO)

    # =========================================================================
    # WRITE OPERATIONS
    # =========================================================================

    async def _write(self, member_id: int, new_holdings: Decimal, expected_version: int) -> None:
        """Version-guarded holdings write."""
        result = await self.session.execute(
            update(Member)
            .where(Member.id == member_id)
            .where(Member.version == expected_version)
            .values(gold_holdings=new_holdings, version=expected_version + 1, updated_at=utcnow())
            )
        if result.rowcount != 1:
            raise StaleWriteError("members", member_id, guard=f"version={expected_version}")

    async def adjust(
        self,
        member_id: int,
        delta: Decimal,
        clamp_at_zero: bool = False,
        on_underflow: Optional[Callable[[Decimal], LedgerError]] = None,
        ) -> Decimal:
        """
        Add a signed delta to a member's holdings.

        The underflow check runs on the same read whose version guards the
        write, so a balance that changed after a caller's own pre-check is
        still caught here.

        Args:
            member_id: Member to adjust
            delta: Grams to add (negative to subtract)
            clamp_at_zero: Floor a negative result at zero instead of rejecting
            on_underflow: Builds the error to raise when the result would be
                negative, given the holdings just read. Takes precedence over
                clamp_at_zero.

        Returns:
            The new holdings value

        Raises:
            NotFoundError: Member does not exist
            InsufficientHoldingsError: Result would be negative (no clamp, no on_underflow)
            StaleWriteError: The member row changed since it was read
        """
        current, version = await self._read_row(member_id, for_update=True)
        new_holdings = truncate_grams(current + delta)

        if new_holdings < ZERO:
            if on_underflow is not None:
                raise on_underflow(current)
            if not clamp_at_zero:
                raise InsufficientHoldingsError(member_id=member_id, holdings=current, required=-delta)
            logger.warning("Holdings clamped at zero", member_id=member_id, holdings=current, delta=delta)
            new_holdings = ZERO

        await self._write(member_id, new_holdings, version)

        logger.debug("Holdings adjusted", member_id=member_id, old=current, delta=delta, new=new_holdings)
        return new_holdings

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def _derive_by_member(self, member_id: Optional[int] = None) -> Dict[int, Decimal]:
        """
        Sum the signed quantities of COMPLETED trades per member.

        Summed in Python on the Decimal values read back from the NUMERIC
        columns: SQLite aggregates NUMERIC as floating point.
        """
        stmt = (
            select(Trade.member_id, Trade.trade_type, Trade.quantity)
            .where(Trade.status == TradeStatus.COMPLETED)
        )
        if member_id is not None:
            stmt = stmt.where(Trade.member_id == member_id)

        derived: Dict[int, Decimal] = defaultdict(lambda: ZERO)
        for mid, trade_type, quantity in (await self.session.execute(stmt)).all():
            derived[mid] += quantity if trade_type == TradeType.BUY else -quantity
        return derived

    async def derive(self, member_id: int) -> Decimal:
        """
        Recompute a member's holdings from the trade log.

        CANCELLED trades contribute nothing: a cancelled BUY was added and then
        reversed, a cancelled SELL never took effect.
        """
        # Raise NotFoundError for unknown members rather than reporting zero
        await self._read_row(member_id)
        derived = await self._derive_by_member(member_id)
        return truncate_grams(derived[member_id])

    async def reconcile(self, member_id: Optional[int] = None, repair: bool = False) -> HLReconcileReport:
        """
        Compare recorded holdings against the trade log.

        Args:
            member_id: Restrict the audit to one member (default: all members)
            repair: Bring drifted counters to the derived value through adjust(),
                under the same version guard as trade-driven writes

        Returns:
            HLReconcileReport listing every checked member
        """
        members_stmt = select(Member.id, Member.gold_holdings).order_by(Member.id)
        if member_id is not None:
            await self._read_row(member_id)
            members_stmt = members_stmt.where(Member.id == member_id)

        derived_by_member = await self._derive_by_member(member_id)

        items: List[HLReconcileItem] = []
        for mid, recorded in (await self.session.execute(members_stmt)).all():
            derived = truncate_grams(derived_by_member[mid])
            item = HLReconcileItem(member_id=mid, recorded=recorded, derived=derived)

            if recorded != derived:
                logger.warning("Holdings drift detected", member_id=mid, recorded=recorded, derived=derived)
                # A negative derived balance means the log itself is corrupt; report, never write it
                if repair and derived >= ZERO:
                    await self.adjust(mid, derived - recorded)
                    item.repaired = True
                    logger.info("Holdings repaired from trade log", member_id=mid, holdings=derived)

            items.append(item)

        drifted = sum(1 for i in items if i.drift != ZERO)
        repaired = sum(1 for i in items if i.repaired)
        return HLReconcileReport(checked=len(items), drifted=drifted, repaired=repaired, items=items)
