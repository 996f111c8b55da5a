"""
Rate Store for GoldLedger.

Owns the gold rate versions and the single-active-version invariant:
- get_active(): the one rate with is_active = true
- list_versions(): the full rate history, newest first
- create_version(): deactivate every row, then insert the new active row,
  inside the caller's database transaction

Design Notes:
- Never updates prices or deletes rows; a new version supersedes the old one
- The partial unique index uq_gold_rates_single_active backs the invariant in
  SQL, so a racing publisher fails on INSERT instead of creating a second
  active row
- The caller (TradeLedgerFacade) is responsible for commit/rollback
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import Admin, GoldRate
from backend.app.logging_config import get_logger
from backend.app.schemas.gold_rates import GRActiveSummary, GRStatistics
from backend.app.services.errors import NoActiveRateError, NotFoundError, InvalidTradeRequestError
from backend.app.utils.datetime_utils import utcnow, as_utc_datetime

logger = get_logger(__name__)


class RateStore:
    """
    Persistence of gold rate versions.

    All methods are async and expect an AsyncSession.
    The caller is responsible for commit/rollback.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def find_active(self) -> Optional[GoldRate]:
        """Most recent active rate, or None before the first version is published."""
        stmt = (
            select(GoldRate)
            .where(GoldRate.is_active.is_(True))
            .order_by(GoldRate.created_at.desc(), GoldRate.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_active(self) -> GoldRate:
        """
        Get the active gold rate.

        Raises:
            NoActiveRateError: If no rate has been published yet
        """
        rate = await self.find_active()
        if rate is None:
            raise NoActiveRateError()
        return rate

    async def get_by_id(self, rate_id: int) -> GoldRate:
        """Get a historical rate version by ID."""
        rate = await self.session.get(GoldRate, rate_id)
        if rate is None:
            raise NotFoundError("GoldRate", rate_id)
        return rate

    async def list_versions(self) -> List[GoldRate]:
        """Every published rate version, newest first."""
        stmt = select(GoldRate).order_by(GoldRate.created_at.desc(), GoldRate.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_active(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(GoldRate).where(GoldRate.is_active.is_(True))
            )
        return result.scalar_one()

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(GoldRate))
        return result.scalar_one()

    async def get_statistics(self) -> GRStatistics:
        """Active rate summary plus the number of published versions."""
        active = await self.find_active()
        total = await self.count()

        summary = None
        if active is not None:
            summary = GRActiveSummary(
                buy_price=active.buy_price,
                sell_price=active.sell_price,
                effective_date=active.effective_date,
                )

        return GRStatistics(
            active_rate=summary,
            total_historical_rates=total,
            has_active_rate=active is not None,
            )

    # =========================================================================
    # CREATE OPERATIONS
    # =========================================================================

    async def create_version(
        self,
        buy_price: Decimal,
        sell_price: Decimal,
        created_by: int,
        effective_date: Optional[datetime] = None,
        ) -> GoldRate:
        """
        Publish a new gold rate version.

        Process:
        1. Validate prices and the publishing admin
        2. Deactivate all currently active rows
        3. Insert the new row with is_active = true and flush

        Both statements run in the caller's transaction: a failed insert rolls
        the deactivation back, so the system never ends up with two active
        rates and only transiently (never visibly) with zero.

        Args:
            buy_price: INR per gram for BUY trades
            sell_price: INR per gram for SELL trades
            created_by: Admin publishing the rate
            effective_date: When the rate becomes effective (default: now)

        Returns:
            The new active GoldRate (id populated)
        """
        if buy_price < 0 or sell_price < 0:
            raise InvalidTradeRequestError(
                "Gold rate prices must be non-negative",
                buy_price=buy_price,
                sell_price=sell_price,
                )

        admin = await self.session.get(Admin, created_by)
        if admin is None:
            raise NotFoundError("Admin", created_by)

        now = utcnow()
        deactivated = await self.session.execute(
            update(GoldRate)
            .where(GoldRate.is_active.is_(True))
            .values(is_active=False, updated_at=now)
            )

        rate = GoldRate(
            buy_price=buy_price,
            sell_price=sell_price,
            is_active=True,
            effective_date=as_utc_datetime(effective_date) if effective_date is not None else now,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            )
        self.session.add(rate)
        await self.session.flush()  # Get ID; unique index violation surfaces here

        logger.info(
            "Gold rate version created",
            gold_rate_id=rate.id,
            buy_price=buy_price,
            sell_price=sell_price,
            deactivated=deactivated.rowcount,
            created_by=created_by,
            )
        return rate
