"""
Settlement Pydantic schemas.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ruzio.services.settlement.ledger import ScopeKind, SettlementStats


class SettlementResponse(BaseModel):
    """Earnings over the delivered orders of one scope."""

    model_config = ConfigDict(from_attributes=True)

    scope: ScopeKind
    subject_id: Optional[UUID] = None
    delivered_orders: int
    total_revenue: Decimal
    total_commission: Decimal
    total_restaurant_earnings: Decimal
    total_delivery_charges: Decimal
    total_platform_fees: Decimal
    total_orders: int
    orders_by_status: dict[str, int]
    rating_count: int = 0
    average_rating: Optional[Decimal] = None

    @classmethod
    def from_stats(cls, stats: SettlementStats) -> "SettlementResponse":
        return cls(
            scope=stats.scope.kind,
            subject_id=stats.scope.subject_id,
            delivered_orders=stats.delivered_orders,
            total_revenue=stats.total_revenue,
            total_commission=stats.total_commission,
            total_restaurant_earnings=stats.total_restaurant_earnings,
            total_delivery_charges=stats.total_delivery_charges,
            total_platform_fees=stats.total_platform_fees,
            total_orders=stats.total_orders,
            orders_by_status=stats.orders_by_status,
            rating_count=stats.rating_count,
            average_rating=stats.average_rating,
        )
