"""
Trade API endpoints for GoldLedger.

- POST /trades: Create a BUY (admin) or SELL trade
- GET /trades: Trade log across all members (admin)
- GET /trades/my-trades: The calling member's trades
- GET /trades/member/{member_id}: One member's trades
- GET /trades/statistics: Trade counters and volumes
- GET /trades/{id}: Get single trade
- PATCH /trades/{id}/status: Approve or reject a PENDING trade (admin)
- POST /trades/{id}/cancel: Reverse a COMPLETED BUY (admin)
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.app.api.v1.dependencies import Actor, get_actor, get_facade, require_admin
from backend.app.db.models import TradeType, TradeStatus
from backend.app.logging_config import get_logger
from backend.app.schemas.trades import TRCreateItem, TRReadItem, TRStatusUpdate, TRStatistics
from backend.app.services.trade_ledger import TradeLedgerFacade

logger = get_logger(__name__)

trade_router = APIRouter(prefix="/trades", tags=["TR (Trades)"])


# =============================================================================
# CREATE
# =============================================================================

@trade_router.post("", response_model=TRReadItem, status_code=201)
async def create_trade(
    item: TRCreateItem,
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> TRReadItem:
    """
    Create a trade at the active gold rate.

    Admins may BUY or SELL for any member (both complete immediately).
    Members may only request a SELL of their own gold, which stays PENDING
    until an admin approves it.
    """
    if not actor.is_admin:
        if item.trade_type == TradeType.BUY:
            raise HTTPException(status_code=403, detail="Only admins can create BUY trades")
        if item.member_id != actor.id:
            raise HTTPException(status_code=403, detail="Members can only sell their own gold")

    logger.info("Creating trade", member_id=item.member_id, trade_type=item.trade_type, actor_id=actor.id)
    return await facade.create_trade(
        member_id=item.member_id,
        trade_type=item.trade_type,
        quantity=item.quantity,
        notes=item.notes,
        initiator_id=actor.id,
        is_admin=actor.is_admin,
        )


# =============================================================================
# READ
# =============================================================================

@trade_router.get("/statistics", response_model=TRStatistics)
async def get_trade_statistics(
    member_id: Optional[int] = Query(None, gt=0, description="Restrict to one member"),
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> TRStatistics:
    """Trade counters; members always get their own."""
    if not actor.is_admin:
        if member_id is not None and member_id != actor.id:
            raise HTTPException(status_code=403, detail="Members can only view their own statistics")
        member_id = actor.id
    return await facade.get_trade_statistics(member_id)


@trade_router.get("", response_model=List[TRReadItem])
async def list_trades(
    member_id: Optional[int] = Query(None, gt=0, description="Filter by member"),
    trade_type: Optional[TradeType] = Query(None, description="Filter by trade type"),
    status: Optional[TradeStatus] = Query(None, description="Filter by status"),
    actor: Actor = Depends(require_admin),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> List[TRReadItem]:
    """Trade log across all members, newest first."""
    return await facade.list_trades(member_id=member_id, trade_type=trade_type, status=status)


@trade_router.get("/my-trades", response_model=List[TRReadItem])
async def list_my_trades(
    trade_type: Optional[TradeType] = Query(None, description="Filter by trade type"),
    status: Optional[TradeStatus] = Query(None, description="Filter by status"),
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> List[TRReadItem]:
    """The calling member's own trade history."""
    if actor.is_admin:
        raise HTTPException(status_code=403, detail="Only members have a trade history")
    return await facade.list_member_trades(actor.id, trade_type=trade_type, status=status)


@trade_router.get("/member/{member_id}", response_model=List[TRReadItem])
async def list_member_trades(
    member_id: int,
    trade_type: Optional[TradeType] = Query(None, description="Filter by trade type"),
    status: Optional[TradeStatus] = Query(None, description="Filter by status"),
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> List[TRReadItem]:
    """A member's trade history, newest first; members may only read their own."""
    if not actor.is_admin and member_id != actor.id:
        raise HTTPException(status_code=403, detail="Members can only view their own trades")
    return await facade.list_member_trades(member_id, trade_type=trade_type, status=status)


@trade_router.get("/{trade_id}", response_model=TRReadItem)
async def get_trade(
    trade_id: int,
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> TRReadItem:
    trade = await facade.get_trade(trade_id)
    if not actor.is_admin and trade.member_id != actor.id:
        raise HTTPException(status_code=403, detail="Members can only view their own trades")
    return trade


# =============================================================================
# STATE TRANSITIONS
# =============================================================================

@trade_router.patch("/{trade_id}/status", response_model=TRReadItem)
async def update_trade_status(
    trade_id: int,
    update: TRStatusUpdate,
    actor: Actor = Depends(require_admin),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> TRReadItem:
    """Approve (COMPLETED) or reject (CANCELLED) a PENDING trade."""
    logger.info("Updating trade status", trade_id=trade_id, status=update.status, admin_id=actor.id)
    return await facade.update_trade_status(trade_id, update.status, actor.id, update.notes)


@trade_router.post("/{trade_id}/cancel", response_model=TRReadItem)
async def cancel_trade(
    trade_id: int,
    actor: Actor = Depends(require_admin),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> TRReadItem:
    """Reverse a COMPLETED BUY; refused when the member no longer holds the gold."""
    logger.info("Cancelling trade", trade_id=trade_id, admin_id=actor.id)
    return await facade.cancel_trade(trade_id, actor.id)
