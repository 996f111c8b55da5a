"""
Holdings API endpoints for GoldLedger.

- GET /holdings/dashboard: Member count, total gold, pending SELLs (admin)
- GET /holdings/{member_id}: Current holdings of a member
- POST /holdings/reconcile: Audit holdings against the trade log (admin)
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.app.api.v1.dependencies import Actor, get_actor, get_facade, require_admin
from backend.app.logging_config import get_logger
from backend.app.schemas.holdings import HLDashboardStatistics, HLMemberHoldings, HLReconcileReport
from backend.app.services.trade_ledger import TradeLedgerFacade

logger = get_logger(__name__)

holdings_router = APIRouter(prefix="/holdings", tags=["HL (Holdings)"])


@holdings_router.get("/dashboard", response_model=HLDashboardStatistics)
async def get_dashboard_statistics(
    actor: Actor = Depends(require_admin),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> HLDashboardStatistics:
    return await facade.get_dashboard_statistics()


@holdings_router.get("/{member_id}", response_model=HLMemberHoldings)
async def get_member_holdings(
    member_id: int,
    actor: Actor = Depends(get_actor),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> HLMemberHoldings:
    if not actor.is_admin and member_id != actor.id:
        raise HTTPException(status_code=403, detail="Members can only view their own holdings")
    return await facade.get_member_holdings(member_id)


@holdings_router.post("/reconcile", response_model=HLReconcileReport)
async def reconcile_holdings(
    member_id: Optional[int] = Query(None, gt=0, description="Restrict to one member"),
    repair: bool = Query(False, description="Overwrite drifted holdings with the derived value"),
    actor: Actor = Depends(require_admin),
    facade: TradeLedgerFacade = Depends(get_facade),
    ) -> HLReconcileReport:
    """
    Compare every member's recorded holdings with the value derived from
    COMPLETED trades. With repair=true drifted counters are rewritten.
    """
    logger.info("Reconciling holdings", member_id=member_id, repair=repair, admin_id=actor.id)
    report = await facade.reconcile_holdings(member_id=member_id, repair=repair)
    if report.drifted:
        logger.warning("Reconciliation found drift", drifted=report.drifted, repaired=report.repaired)
    return report
