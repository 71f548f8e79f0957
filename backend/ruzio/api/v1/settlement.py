"""
Settlement API endpoints.

Admins see platform-wide figures (or one restaurant's), restaurant owners see
their restaurant's and delivery partners their own deliveries'.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from ruzio.api.deps import CurrentActor, LedgerDep
from ruzio.core.logging import get_logger
from ruzio.schemas.settlement import SettlementResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/settlement", tags=["settlement"])


@router.get("/", response_model=SettlementResponse, summary="Settlement figures")
async def get_settlement(
    actor: CurrentActor,
    ledger: LedgerDep,
    restaurant_id: Optional[UUID] = Query(
        None, description="Restaurant to report on (admins only)"
    ),
) -> SettlementResponse:
    """Earnings over the delivered orders the caller may see."""
    scope = await ledger.scope_for_actor(actor.id, actor.role, restaurant_id)
    stats = await ledger.get_settlement(scope)

    logger.info(
        "Settlement requested",
        scope=scope.kind.value,
        delivered_orders=stats.delivered_orders,
    )
    return SettlementResponse.from_stats(stats)
