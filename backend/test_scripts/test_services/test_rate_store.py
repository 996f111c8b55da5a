"""
Tests for RateStore.

Tests active rate lookup, version creation and the single-active-rate
invariant.

Reference: backend/app/services/rate_store.py
"""
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from backend.app.db.models import GoldRate
from backend.app.services.errors import NoActiveRateError, NotFoundError, InvalidTradeRequestError, LedgerErrorKind
from backend.app.services.rate_store import RateStore
from backend.test_scripts.test_utils import publish_rate


# ============================================================================
# GET ACTIVE
# ============================================================================

class TestGetActive:
    """Active rate lookup."""

    @pytest.mark.asyncio
    async def test_no_rate_published(self, session):
        """RS-U-001: get_active before the first version raises NoActiveRate."""
        store = RateStore(session)

        assert await store.find_active() is None
        with pytest.raises(NoActiveRateError) as exc_info:
            await store.get_active()
        assert exc_info.value.kind == LedgerErrorKind.NO_ACTIVE_RATE

    @pytest.mark.asyncio
    async def test_get_active_returns_published_rate(self, session, active_rate):
        """RS-U-002: get_active returns the published version."""
        rate = await RateStore(session).get_active()

        assert rate.id == active_rate.id
        assert rate.buy_price == Decimal("6000")
        assert rate.sell_price == Decimal("5800")
        assert rate.is_active is True

    @pytest.mark.asyncio
    async def test_get_by_id_unknown(self, session):
        """RS-U-003: get_by_id on a missing id raises NotFound."""
        with pytest.raises(NotFoundError):
            await RateStore(session).get_by_id(999)


# ============================================================================
# CREATE VERSION
# ============================================================================

class TestCreateVersion:
    """Version creation and the single-active invariant."""

    @pytest.mark.asyncio
    async def test_first_version(self, session, admin):
        """RS-U-010: First version becomes active; effective_date defaults to now."""
        store = RateStore(session)
        rate = await store.create_version(Decimal("6100.50"), Decimal("5900.25"), created_by=admin.id)

        assert rate.id is not None
        assert rate.is_active is True
        assert rate.effective_date is not None
        assert rate.created_by == admin.id
        assert await store.count_active() == 1

    @pytest.mark.asyncio
    async def test_new_version_supersedes_old(self, session_factory, session, admin, active_rate):
        """RS-U-011: Creating a rate deactivates the previous one (scenario F)."""
        store = RateStore(session)
        new_rate = await store.create_version(Decimal("6200"), Decimal("6000"), created_by=admin.id)

        old = (await session.execute(
            select(GoldRate.is_active).where(GoldRate.id == active_rate.id)
            )).scalar_one()

        assert old is False
        assert new_rate.is_active is True
        assert await store.count_active() == 1
        assert (await store.get_active()).id == new_rate.id

    @pytest.mark.asyncio
    async def test_many_versions_keep_one_active(self, session_factory, session, admin):
        """RS-U-012: After N publications exactly one row is active, N rows exist."""
        for i in range(5):
            await publish_rate(session_factory, admin.id, Decimal(6000 + i), Decimal(5800 + i))

        store = RateStore(session)
        assert await store.count() == 5
        assert await store.count_active() == 1
        assert (await store.get_active()).buy_price == Decimal("6004")

    @pytest.mark.asyncio
    async def test_explicit_effective_date(self, session, admin):
        """RS-U-013: A date effective_date is stored as midnight UTC."""
        rate = await RateStore(session).create_version(
            Decimal("6000"), Decimal("5800"), created_by=admin.id, effective_date=date(2025, 1, 15)
            )

        assert rate.effective_date == datetime(2025, 1, 15, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_negative_price_rejected(self, session, admin):
        """RS-U-014: Negative prices are refused and nothing is written."""
        store = RateStore(session)

        with pytest.raises(InvalidTradeRequestError):
            await store.create_version(Decimal("-1"), Decimal("5800"), created_by=admin.id)
        with pytest.raises(InvalidTradeRequestError):
            await store.create_version(Decimal("6000"), Decimal("-0.01"), created_by=admin.id)

        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_unknown_admin(self, session, active_rate):
        """RS-U-015: created_by must be an existing admin; the active rate is untouched."""
        store = RateStore(session)

        with pytest.raises(NotFoundError):
            await store.create_version(Decimal("6000"), Decimal("5800"), created_by=999)

        assert (await store.get_active()).id == active_rate.id


# ============================================================================
# STATISTICS
# ============================================================================

class TestStatistics:

    @pytest.mark.asyncio
    async def test_statistics_without_rate(self, session):
        """RS-U-020: Statistics before any publication."""
        stats = await RateStore(session).get_statistics()

        assert stats.has_active_rate is False
        assert stats.active_rate is None
        assert stats.total_historical_rates == 0

    @pytest.mark.asyncio
    async def test_statistics_with_history(self, session_factory, session, admin):
        """RS-U-021: Statistics report the latest rate and the version count."""
        await publish_rate(session_factory, admin.id, Decimal("6000"), Decimal("5800"))
        await publish_rate(session_factory, admin.id, Decimal("6150"), Decimal("5950"))

        stats = await RateStore(session).get_statistics()

        assert stats.has_active_rate is True
        assert stats.total_historical_rates == 2
        assert stats.active_rate.buy_price == Decimal("6150")
        assert stats.active_rate.sell_price == Decimal("5950")

    @pytest.mark.asyncio
    async def test_list_versions_newest_first(self, session_factory, session, admin):
        """RS-U-022: list_versions returns the full history, newest first, only the head active."""
        old = await publish_rate(session_factory, admin.id, Decimal("6000"), Decimal("5800"))
        new = await publish_rate(session_factory, admin.id, Decimal("6150"), Decimal("5950"))

        versions = await RateStore(session).list_versions()

        assert [v.id for v in versions] == [new.id, old.id]
        assert [v.is_active for v in versions] == [True, False]

    @pytest.mark.asyncio
    async def test_list_versions_empty(self, session):
        """RS-U-023: No published rate -> empty history."""
        assert await RateStore(session).list_versions() == []
