"""
Gold rate API endpoints for GoldLedger.

- GET /gold-rates: Rate history, newest first
- GET /gold-rates/active: Current buy/sell prices
- GET /gold-rates/statistics: Active rate summary and version count
- GET /gold-rates/{id}: Historical version
- POST /gold-rates: Publish a new version (admin)
"""
from typing import List

from fastapi import APIRouter, Depends

from backend.app.api.v1.dependencies import Actor, get_actor, get_facade, require_admin
from backend.app.logging_config import get_logger
from backend.app.schemas.gold_rates import GRCreateItem, GRReadItem, GRStatistics
from backend.app.services.trade_ledger import TradeLedgerFacade

logger = get_logger(__name__)

gold_rate_router = APIRouter(prefix="/gold-rates", tags=["GR (Gold Rates)"])


@gold_rate_router.get("", response_model=List[GRReadItem])
async def list_gold_rates(
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> List[GRReadItem]:
    """Every published rate version, the active one included."""
    return await facade.list_gold_rates()


@gold_rate_router.get("/active", response_model=GRReadItem)
async def get_active_gold_rate(
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> GRReadItem:
    return await facade.get_active_gold_rate()


@gold_rate_router.get("/statistics", response_model=GRStatistics)
async def get_gold_rate_statistics(
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> GRStatistics:
    return await facade.get_gold_rate_statistics()


@gold_rate_router.get("/{rate_id}", response_model=GRReadItem)
async def get_gold_rate(
    rate_id: int,
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> GRReadItem:
    return await facade.get_gold_rate(rate_id)


@gold_rate_router.post("", response_model=GRReadItem, status_code=201)
async def create_gold_rate(
    item: GRCreateItem,
    actor: Actor = Depends(require_admin),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> GRReadItem:
    """
    Publish a new gold rate.

    The previous active rate is deactivated in the same transaction; trades
    already priced keep their rate_at_trade.
    """
    logger.info("Publishing gold rate", buy_price=item.buy_price, sell_price=item.sell_price, admin_id=actor.id)
    return await facade.create_gold_rate_version(
        buy_price=item.buy_price,
        sell_price=item.sell_price,
        admin_id=actor.id,
        effective_date=item.effective_date,
        )
