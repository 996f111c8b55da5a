"""
Tests for TradeStateMachine.

Tests trade creation (pricing, status selection, holdings effect), status
updates on PENDING trades, BUY reversal, and the transition table.

Reference: backend/app/services/trade_state_machine.py
"""
from decimal import Decimal

import pytest

from backend.app.db.models import TradeType, TradeStatus, ActorRole
from backend.app.services.errors import (
    NotFoundError,
    NoActiveRateError,
    InsufficientHoldingsError,
    InvalidStateTransitionError,
    CannotReverseError,
    InvalidTradeRequestError,
    LedgerErrorKind,
    )
from backend.app.services.holdings_ledger import HoldingsLedger
from backend.app.services.trade_state_machine import TradeStateMachine
from backend.test_scripts.test_utils import publish_rate


async def buy(machine: TradeStateMachine, member_id: int, admin_id: int, quantity: str):
    return await machine.create(member_id, TradeType.BUY, Decimal(quantity), None, admin_id, is_admin=True)


async def member_sell(machine: TradeStateMachine, member_id: int, quantity: str):
    return await machine.create(member_id, TradeType.SELL, Decimal(quantity), None, member_id, is_admin=False)


# ============================================================================
# CREATE
# ============================================================================

class TestCreate:
    """Trade creation."""

    @pytest.mark.asyncio
    async def test_admin_buy_completes(self, session, admin, member, active_rate):
        """TSM-U-001: Admin BUY of 10g at 6000 is COMPLETED, holdings 10, total 60000 (scenario A)."""
        machine = TradeStateMachine(session)
        trade = await buy(machine, member.id, admin.id, "10")

        assert trade.status == TradeStatus.COMPLETED
        assert trade.rate_at_trade == Decimal("6000")
        assert trade.total_amount == Decimal("60000")
        assert trade.gold_rate_id == active_rate.id
        assert trade.initiated_by == admin.id
        assert trade.initiated_by_role == ActorRole.ADMIN
        assert await HoldingsLedger(session).get(member.id) == Decimal("10")

    @pytest.mark.asyncio
    async def test_member_sell_pending(self, session, admin, member, active_rate):
        """TSM-U-002: Member SELL is PENDING at the sell price, holdings unchanged (scenario B)."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "10")

        trade = await member_sell(machine, member.id, "10")

        assert trade.status == TradeStatus.PENDING
        assert trade.rate_at_trade == Decimal("5800")
        assert trade.total_amount == Decimal("58000")
        assert trade.initiated_by_role == ActorRole.MEMBER
        assert trade.approved_by is None
        assert await HoldingsLedger(session).get(member.id) == Decimal("10")

    @pytest.mark.asyncio
    async def test_admin_sell_completes(self, session, admin, member, active_rate):
        """TSM-U-003: Admin SELL completes immediately and reduces holdings."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "10")

        trade = await machine.create(member.id, TradeType.SELL, Decimal("4"), "walk-in", admin.id, is_admin=True)

        assert trade.status == TradeStatus.COMPLETED
        assert trade.notes == "walk-in"
        assert await HoldingsLedger(session).get(member.id) == Decimal("6")

    @pytest.mark.asyncio
    async def test_sell_exceeding_holdings(self, session, admin, member, active_rate):
        """TSM-U-004: SELL of 10g with 5g held is rejected, holdings unchanged (scenario D)."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "5")

        with pytest.raises(InsufficientHoldingsError) as exc_info:
            await member_sell(machine, member.id, "10")

        assert exc_info.value.kind == LedgerErrorKind.INSUFFICIENT_HOLDINGS
        assert await HoldingsLedger(session).get(member.id) == Decimal("5")

    @pytest.mark.asyncio
    async def test_no_active_rate(self, session, admin, member):
        """TSM-U-005: Trade creation without a published rate is rejected."""
        with pytest.raises(NoActiveRateError):
            await buy(TradeStateMachine(session), member.id, admin.id, "1")

    @pytest.mark.asyncio
    async def test_unknown_member(self, session, admin, active_rate):
        """TSM-U-006: Trade for a missing member raises NotFound."""
        with pytest.raises(NotFoundError):
            await buy(TradeStateMachine(session), 999, admin.id, "1")

    @pytest.mark.asyncio
    async def test_member_cannot_buy(self, session, member, active_rate):
        """TSM-U-007: BUY is admin-only."""
        with pytest.raises(InvalidTradeRequestError):
            await TradeStateMachine(session).create(member.id, TradeType.BUY, Decimal("1"), None, member.id, is_admin=False)

    @pytest.mark.asyncio
    async def test_member_cannot_sell_for_other(self, session, admin, member, other_member, active_rate):
        """TSM-U-008: A member can only sell their own gold."""
        machine = TradeStateMachine(session)
        await buy(machine, other_member.id, admin.id, "5")

        with pytest.raises(InvalidTradeRequestError):
            await machine.create(other_member.id, TradeType.SELL, Decimal("1"), None, member.id, is_admin=False)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", ["0", "-1", "0.0009"])
    async def test_quantity_below_minimum(self, session, admin, member, active_rate, quantity):
        """TSM-U-009: Quantities below 0.001g are rejected."""
        with pytest.raises(InvalidTradeRequestError):
            await buy(TradeStateMachine(session), member.id, admin.id, quantity)

    @pytest.mark.asyncio
    async def test_notes_too_long(self, session, admin, member, active_rate):
        """TSM-U-010: Notes over 500 characters are rejected."""
        with pytest.raises(InvalidTradeRequestError):
            await TradeStateMachine(session).create(member.id, TradeType.BUY, Decimal("1"), "x" * 501, admin.id, is_admin=True)

    @pytest.mark.asyncio
    async def test_total_amount_truncated(self, session_factory, session, admin, member):
        """TSM-U-011: total_amount is truncated (not rounded) to 6 decimals."""
        await publish_rate(session_factory, admin.id, Decimal("6123.456789"), Decimal("6000"))

        trade = await buy(TradeStateMachine(session), member.id, admin.id, "0.333")

        # 0.333 * 6123.456789 = 2039.111110737
        assert trade.total_amount == Decimal("2039.111110")

    @pytest.mark.asyncio
    async def test_rate_frozen_at_creation(self, session_factory, admin, member, active_rate):
        """TSM-U-012: Publishing a new rate does not reprice existing trades."""
        async with session_factory() as session:
            async with session.begin():
                trade = await buy(TradeStateMachine(session), member.id, admin.id, "2")

        await publish_rate(session_factory, admin.id, Decimal("7000"), Decimal("6800"))

        async with session_factory() as session:
            stored = await TradeStateMachine(session).get(trade.id)
            assert stored.rate_at_trade == Decimal("6000")
            assert stored.gold_rate_id == active_rate.id


# ============================================================================
# UPDATE STATUS
# ============================================================================

class TestUpdateStatus:
    """Approve / reject PENDING trades."""

    @pytest.mark.asyncio
    async def test_approve_sell(self, session, admin, member, active_rate):
        """TSM-U-020: Approving a PENDING SELL completes it and reduces holdings (scenario C)."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "10")
        pending = await member_sell(machine, member.id, "10")

        trade = await machine.update_status(pending.id, TradeStatus.COMPLETED, admin.id)

        assert trade.status == TradeStatus.COMPLETED
        assert trade.approved_by == admin.id
        assert await HoldingsLedger(session).get(member.id) == Decimal("0")

    @pytest.mark.asyncio
    async def test_reject_sell(self, session, admin, member, active_rate):
        """TSM-U-021: Rejecting a PENDING SELL cancels it with no holdings effect."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "10")
        pending = await member_sell(machine, member.id, "4")

        trade = await machine.update_status(pending.id, TradeStatus.CANCELLED, admin.id, notes="price disputed")

        assert trade.status == TradeStatus.CANCELLED
        assert trade.approved_by == admin.id
        assert trade.notes == "price disputed"
        assert await HoldingsLedger(session).get(member.id) == Decimal("10")

    @pytest.mark.asyncio
    async def test_approve_rechecks_holdings(self, session, admin, member, active_rate):
        """TSM-U-022: Approval fails if holdings dropped since the request."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "10")
        first = await member_sell(machine, member.id, "10")
        second = await member_sell(machine, member.id, "10")

        await machine.update_status(first.id, TradeStatus.COMPLETED, admin.id)
        with pytest.raises(InsufficientHoldingsError):
            await machine.update_status(second.id, TradeStatus.COMPLETED, admin.id)

        assert (await machine.get(second.id)).status == TradeStatus.PENDING
        assert await HoldingsLedger(session).get(member.id) == Decimal("0")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", [TradeStatus.COMPLETED, TradeStatus.CANCELLED])
    async def test_completed_trade_is_final(self, session, admin, member, active_rate, target):
        """TSM-U-023: update_status on a COMPLETED trade is an invalid transition."""
        machine = TradeStateMachine(session)
        trade = await buy(machine, member.id, admin.id, "1")

        with pytest.raises(InvalidStateTransitionError, match="completed"):
            await machine.update_status(trade.id, target, admin.id)

    @pytest.mark.asyncio
    async def test_cancelled_trade_is_final(self, session, admin, member, active_rate):
        """TSM-U-024: update_status on a CANCELLED trade is an invalid transition."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "5")
        pending = await member_sell(machine, member.id, "1")
        await machine.update_status(pending.id, TradeStatus.CANCELLED, admin.id)

        with pytest.raises(InvalidStateTransitionError, match="cancelled"):
            await machine.update_status(pending.id, TradeStatus.COMPLETED, admin.id)

    @pytest.mark.asyncio
    async def test_pending_target_rejected(self, session, admin, member, active_rate):
        """TSM-U-025: PENDING is not a valid target status."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "5")
        pending = await member_sell(machine, member.id, "1")

        with pytest.raises(InvalidStateTransitionError):
            await machine.update_status(pending.id, TradeStatus.PENDING, admin.id)

    @pytest.mark.asyncio
    async def test_unknown_trade(self, session, admin):
        """TSM-U-026: Unknown trade raises NotFound."""
        with pytest.raises(NotFoundError):
            await TradeStateMachine(session).update_status(999, TradeStatus.COMPLETED, admin.id)

    @pytest.mark.asyncio
    async def test_unknown_admin(self, session, admin, member, active_rate):
        """TSM-U-027: The approving admin must exist."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "5")
        pending = await member_sell(machine, member.id, "1")

        with pytest.raises(NotFoundError):
            await machine.update_status(pending.id, TradeStatus.COMPLETED, 999)


# ============================================================================
# CANCEL (BUY REVERSAL)
# ============================================================================

class TestCancel:
    """Reversal of COMPLETED BUY trades."""

    @pytest.mark.asyncio
    async def test_cancel_buy(self, session, admin, second_admin, member, active_rate):
        """TSM-U-030: Cancelling a BUY of 20g returns holdings to 0 (scenario E)."""
        machine = TradeStateMachine(session)
        trade = await buy(machine, member.id, admin.id, "20")
        assert await HoldingsLedger(session).get(member.id) == Decimal("20")

        cancelled = await machine.cancel(trade.id, second_admin.id)

        assert cancelled.status == TradeStatus.CANCELLED
        assert cancelled.approved_by == second_admin.id
        assert await HoldingsLedger(session).get(member.id) == Decimal("0")

    @pytest.mark.asyncio
    async def test_second_cancel_fails(self, session, admin, member, active_rate):
        """TSM-U-031: Cancelling the same BUY twice is an invalid transition (scenario E)."""
        machine = TradeStateMachine(session)
        trade = await buy(machine, member.id, admin.id, "20")
        await machine.cancel(trade.id, admin.id)

        with pytest.raises(InvalidStateTransitionError):
            await machine.cancel(trade.id, admin.id)
        assert await HoldingsLedger(session).get(member.id) == Decimal("0")

    @pytest.mark.asyncio
    async def test_cannot_reverse_sold_gold(self, session, admin, member, active_rate):
        """TSM-U-032: A BUY whose gold was already sold cannot be cancelled."""
        machine = TradeStateMachine(session)
        trade = await buy(machine, member.id, admin.id, "10")
        await machine.create(member.id, TradeType.SELL, Decimal("6"), None, admin.id, is_admin=True)

        with pytest.raises(CannotReverseError) as exc_info:
            await machine.cancel(trade.id, admin.id)

        assert exc_info.value.kind == LedgerErrorKind.CANNOT_REVERSE
        assert "They may have already sold this gold" in exc_info.value.message
        assert (await machine.get(trade.id)).status == TradeStatus.COMPLETED
        assert await HoldingsLedger(session).get(member.id) == Decimal("4")

    @pytest.mark.asyncio
    async def test_cancel_sell_rejected(self, session, admin, member, active_rate):
        """TSM-U-033: Only BUY trades can be cancelled."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "10")
        sell = await machine.create(member.id, TradeType.SELL, Decimal("1"), None, admin.id, is_admin=True)

        with pytest.raises(InvalidStateTransitionError, match="BUY"):
            await machine.cancel(sell.id, admin.id)


# ============================================================================
# TRANSITION LAW
# ============================================================================

class TestTransitionLaw:
    """Only PENDING->COMPLETED, PENDING->CANCELLED and COMPLETED(BUY)->CANCELLED are legal."""

    @pytest.mark.asyncio
    async def test_every_illegal_transition_fails(self, session, admin, member, active_rate):
        """TSM-U-040: Each illegal (state, operation) pair raises InvalidStateTransition."""
        machine = TradeStateMachine(session)
        completed_buy = await buy(machine, member.id, admin.id, "50")
        completed_sell = await machine.create(member.id, TradeType.SELL, Decimal("1"), None, admin.id, is_admin=True)
        pending_sell = await member_sell(machine, member.id, "1")
        rejected_sell = await member_sell(machine, member.id, "1")
        await machine.update_status(rejected_sell.id, TradeStatus.CANCELLED, admin.id)
        cancelled_buy = await buy(machine, member.id, admin.id, "1")
        await machine.cancel(cancelled_buy.id, admin.id)

        illegal = [
            lambda: machine.update_status(completed_buy.id, TradeStatus.CANCELLED, admin.id),
            lambda: machine.update_status(completed_sell.id, TradeStatus.CANCELLED, admin.id),
            lambda: machine.update_status(rejected_sell.id, TradeStatus.COMPLETED, admin.id),
            lambda: machine.update_status(cancelled_buy.id, TradeStatus.COMPLETED, admin.id),
            lambda: machine.cancel(completed_sell.id, admin.id),
            lambda: machine.cancel(pending_sell.id, admin.id),
            lambda: machine.cancel(rejected_sell.id, admin.id),
            lambda: machine.cancel(cancelled_buy.id, admin.id),
            ]
        before = await HoldingsLedger(session).get(member.id)

        for attempt in illegal:
            with pytest.raises(InvalidStateTransitionError):
                await attempt()

        assert await HoldingsLedger(session).get(member.id) == before


# ============================================================================
# STATISTICS
# ============================================================================

class TestStatistics:

    @pytest.mark.asyncio
    async def test_statistics(self, session, admin, member, other_member, active_rate):
        """TSM-U-050: Counters per status/type and COMPLETED volumes."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "10")
        await buy(machine, other_member.id, admin.id, "2")
        await machine.create(member.id, TradeType.SELL, Decimal("3"), None, admin.id, is_admin=True)
        await member_sell(machine, member.id, "1")

        stats = await machine.get_statistics()
        assert stats.total_trades == 4
        assert stats.completed_trades == 3
        assert stats.pending_trades == 1
        assert stats.buy_trades == 2
        assert stats.sell_trades == 2
        assert stats.buy_volume.total_quantity == Decimal("12")
        assert stats.buy_volume.total_amount == Decimal("72000")
        assert stats.sell_volume.total_quantity == Decimal("3")
        assert stats.sell_volume.total_amount == Decimal("17400")
        assert await machine.count_pending_sells() == 1

        member_stats = await machine.get_statistics(member.id)
        assert member_stats.member_id == member.id
        assert member_stats.total_trades == 3
        assert member_stats.buy_volume.total_quantity == Decimal("10")


# ============================================================================
# TRADE LOG
# ============================================================================

class TestTradeLog:
    """Reading the trade history."""

    @pytest.mark.asyncio
    async def test_list_for_member_newest_first(self, session, admin, member, other_member, active_rate):
        """TSM-U-060: A member's history holds only their trades, newest first."""
        machine = TradeStateMachine(session)
        first = await buy(machine, member.id, admin.id, "10")
        await buy(machine, other_member.id, admin.id, "1")
        second = await member_sell(machine, member.id, "4")

        trades = await machine.list_for_member(member.id)

        assert [t.id for t in trades] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_list_filters(self, session, admin, member, other_member, active_rate):
        """TSM-U-061: Type and status filters narrow the log."""
        machine = TradeStateMachine(session)
        await buy(machine, member.id, admin.id, "10")
        pending = await member_sell(machine, member.id, "4")
        await buy(machine, other_member.id, admin.id, "2")

        assert [t.id for t in await machine.list_for_member(member.id, status=TradeStatus.PENDING)] == [pending.id]
        assert len(await machine.list_trades(trade_type=TradeType.BUY)) == 2
        assert len(await machine.list_trades()) == 3

    @pytest.mark.asyncio
    async def test_list_for_unknown_member(self, session):
        """TSM-U-062: Listing trades of a missing member raises NotFound."""
        with pytest.raises(NotFoundError):
            await TradeStateMachine(session).list_for_member(999)
