"""
Shared FastAPI dependencies for the v1 API.

Caller identity is established by the authentication layer in front of this
service and forwarded as headers:
- X-Actor-Id: numeric id of the admin or member making the call
- X-Actor-Role: ADMIN or MEMBER
"""
from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel

from backend.app.db.models import ActorRole
from backend.app.db.session import get_session_factory
from backend.app.services.trade_ledger import TradeLedgerFacade


class Actor(BaseModel):
    """Authenticated caller of an endpoint."""
    id: int
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


@lru_cache
def get_facade() -> TradeLedgerFacade:
    """Process-wide facade bound to the application database (overridden in tests)."""
    return TradeLedgerFacade(get_session_factory())


def get_actor(
    x_actor_id: int = Header(..., gt=0),
    x_actor_role: str = Header(...),
    ) -> Actor:
    """
    Dependency returning the caller identity.
    Raises 401 if the role header is not a known role.
    """
    try:
        role = ActorRole(x_actor_role.upper())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown actor role: {x_actor_role}")
    return Actor(id=x_actor_id, role=role)


def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    """Dependency for admin-only endpoints. Raises 403 for member callers."""
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return actor
