"""
Settlement ledger.

Read-side aggregation of delivered orders into platform, restaurant and
delivery partner earnings. Nothing here is stored: every call recomputes the
sums from the frozen order breakdowns, so the figures always agree with the
orders themselves.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ruzio.core.logging import get_logger
from ruzio.database.models.order import Order
from ruzio.services.catalog.repository import CatalogRepository
from ruzio.services.orders.enums import ActorRole, OrderStatus
from ruzio.services.orders.exceptions import (
    OrderNotFoundError,
    UnauthorizedActorError,
    UpstreamUnavailableError,
)
from ruzio.services.pricing.pricing_engine import round_money

logger = get_logger(__name__)

ZERO = Decimal("0.00")


class ScopeKind(str, Enum):
    PLATFORM = "platform"
    RESTAURANT = "restaurant"
    DELIVERY_PARTNER = "delivery_partner"


@dataclass(frozen=True)
class SettlementScope:
    """Set of orders a settlement is computed over."""

    kind: ScopeKind
    subject_id: Optional[uuid.UUID] = None

    @classmethod
    def platform(cls) -> "SettlementScope":
        return cls(ScopeKind.PLATFORM)

    @classmethod
    def restaurant(cls, restaurant_id: uuid.UUID) -> "SettlementScope":
        return cls(ScopeKind.RESTAURANT, restaurant_id)

    @classmethod
    def delivery_partner(cls, partner_id: uuid.UUID) -> "SettlementScope":
        return cls(ScopeKind.DELIVERY_PARTNER, partner_id)


@dataclass(frozen=True)
class SettlementStats:
    """
    Earnings over the delivered orders of a scope.

    Attributes:
        scope: Scope the figures cover
        delivered_orders: Number of delivered orders
        total_revenue: Sum of total_amount over delivered orders
        total_commission: Sum of admin_commission_amount
        total_restaurant_earnings: Sum of restaurant_earning_amount
        total_delivery_charges: Sum of delivery_charge
        total_platform_fees: Sum of platform_fee
        total_orders: Number of orders in the scope, any status
        orders_by_status: Order count per status within the scope
        rating_count: Number of rated delivered orders
        average_rating: Mean customer rating, None when nothing is rated
    """

    scope: SettlementScope
    delivered_orders: int = 0
    total_revenue: Decimal = ZERO
    total_commission: Decimal = ZERO
    total_restaurant_earnings: Decimal = ZERO
    total_delivery_charges: Decimal = ZERO
    total_platform_fees: Decimal = ZERO
    total_orders: int = 0
    orders_by_status: Dict[str, int] = field(default_factory=dict)
    rating_count: int = 0
    average_rating: Optional[Decimal] = None


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return round_money(value if isinstance(value, Decimal) else Decimal(str(value)))


class SettlementLedger:
    """Computes settlement figures from delivered orders."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.catalog = CatalogRepository(session)

    async def get_settlement(self, scope: SettlementScope) -> SettlementStats:
        """
        Aggregate the delivered orders of a scope.

        Raises:
            UpstreamUnavailableError: If the aggregation query fails
        """
        conditions = self._scope_conditions(scope)

        totals_stmt = select(
            func.count(Order.id),
            func.sum(Order.total_amount),
            func.sum(Order.admin_commission_amount),
            func.sum(Order.restaurant_earning_amount),
            func.sum(Order.delivery_charge),
            func.sum(Order.platform_fee),
            func.count(Order.rating),
            func.avg(Order.rating),
        ).where(Order.status == OrderStatus.DELIVERED, *conditions)

        by_status_stmt = (
            select(Order.status, func.count(Order.id))
            .where(*conditions)
            .group_by(Order.status)
        )

        try:
            totals = (await self.session.execute(totals_stmt)).one()
            by_status_rows = (await self.session.execute(by_status_stmt)).all()
        except SQLAlchemyError as e:
            logger.error(
                "Settlement aggregation failed",
                scope=scope.kind.value,
                subject_id=str(scope.subject_id) if scope.subject_id else None,
                error=str(e),
            )
            raise UpstreamUnavailableError(
                "Settlement aggregation failed", scope=scope.kind.value
            ) from e

        orders_by_status = {status.value: 0 for status in OrderStatus}
        for status, count in by_status_rows:
            orders_by_status[OrderStatus(status).value] = count

        (
            delivered,
            revenue,
            commission,
            restaurant_earnings,
            delivery_charges,
            platform_fees,
            rating_count,
            average_rating,
        ) = totals

        stats = SettlementStats(
            scope=scope,
            delivered_orders=delivered or 0,
            total_revenue=_money(revenue),
            total_commission=_money(commission),
            total_restaurant_earnings=_money(restaurant_earnings),
            total_delivery_charges=_money(delivery_charges),
            total_platform_fees=_money(platform_fees),
            total_orders=sum(orders_by_status.values()),
            orders_by_status=orders_by_status,
            rating_count=rating_count or 0,
            average_rating=(
                _money(average_rating) if average_rating is not None else None
            ),
        )

        logger.debug(
            "Settlement computed",
            scope=scope.kind.value,
            delivered_orders=stats.delivered_orders,
            total_revenue=str(stats.total_revenue),
        )
        return stats

    async def scope_for_actor(
        self,
        actor_id: uuid.UUID,
        actor_role: ActorRole,
        restaurant_id: Optional[uuid.UUID] = None,
    ) -> SettlementScope:
        """
        Resolve the settlement scope an actor may see.

        Admins see the platform, or any single restaurant when
        ``restaurant_id`` is given. Restaurant owners see their restaurant and
        delivery partners their own deliveries.

        Raises:
            UnauthorizedActorError: For customers, or non-admins asking for
                another scope
            OrderNotFoundError: If the restaurant does not exist
        """
        if actor_role == ActorRole.ADMIN:
            if restaurant_id is None:
                return SettlementScope.platform()
            if await self.catalog.get_restaurant(restaurant_id) is None:
                raise OrderNotFoundError(
                    "Restaurant not found", restaurant_id=str(restaurant_id)
                )
            return SettlementScope.restaurant(restaurant_id)

        if actor_role == ActorRole.RESTAURANT:
            restaurant = await self.catalog.get_restaurant_by_owner(actor_id)
            if restaurant is None:
                raise OrderNotFoundError(
                    "Restaurant not found", owner_id=str(actor_id)
                )
            if restaurant_id is not None and restaurant_id != restaurant.id:
                raise UnauthorizedActorError(
                    "Restaurant owners only see their own settlement",
                    owner_id=str(actor_id),
                )
            return SettlementScope.restaurant(restaurant.id)

        if actor_role == ActorRole.DELIVERY and restaurant_id is None:
            return SettlementScope.delivery_partner(actor_id)

        raise UnauthorizedActorError(
            "Settlement is not available for this actor",
            actor_role=actor_role.value,
        )

    @staticmethod
    def _scope_conditions(scope: SettlementScope) -> list:
        if scope.kind == ScopeKind.RESTAURANT:
            return [Order.restaurant_id == scope.subject_id]
        if scope.kind == ScopeKind.DELIVERY_PARTNER:
            return [Order.delivery_partner_id == scope.subject_id]
        return []
