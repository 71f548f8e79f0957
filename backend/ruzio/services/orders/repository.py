"""
Order data access repository with conditional writes.

This module implements the OrderRepository class providing async methods for
creating orders with their line snapshots, applying status changes as
compare-and-set updates, recording status history and listing orders. The
repository never commits; the calling service owns the unit of work. Every
status-changing write is an ``UPDATE ... WHERE status = :expected`` whose
affected row count tells the caller whether it won.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import and_, exists, func, select, true, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ruzio.core.config import get_settings
from ruzio.core.logging import get_logger
from ruzio.database.models.order import (
    Order,
    OrderItem,
    OrderSequence,
    OrderStatusHistory,
)
from ruzio.services.orders.enums import (
    ACTIVE_DELIVERY_STATUSES,
    ActorRole,
    OrderStatus,
)
from ruzio.services.orders.exceptions import (
    PartnerBusyError,
    UpstreamUnavailableError,
)
from ruzio.services.pricing.pricing_engine import PriceBreakdown

logger = get_logger(__name__)

ORDER_SEQUENCE_NAME = "orders"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderRepository:
    """
    Repository for order data access operations.

    Provides async methods for order creation, actor-scoped lookups,
    conditional status updates and paginated listings. Database failures are
    logged and raised as UpstreamUnavailableError.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def next_display_number(self) -> str:
        """
        Allocate the next human-readable order number.

        Uses an upsert on the sequence row so the first allocation and
        concurrent allocations both stay unique.

        Returns:
            Display number such as ``RUZ000042``

        Raises:
            UpstreamUnavailableError: If the allocation fails
        """
        settings = get_settings()
        table = OrderSequence.__table__
        insert = (
            postgresql_insert
            if self.session.get_bind().dialect.name == "postgresql"
            else sqlite_insert
        )

        stmt = (
            insert(table)
            .values(name=ORDER_SEQUENCE_NAME, value=1)
            .on_conflict_do_update(
                index_elements=[table.c.name],
                set_={"value": table.c.value + 1, "updated_at": func.now()},
            )
            .returning(table.c.value)
        )

        try:
            result = await self.session.execute(stmt)
            value = result.scalar_one()
        except SQLAlchemyError as e:
            logger.error("Failed to allocate order number", error=str(e))
            raise UpstreamUnavailableError("Order number allocation failed") from e

        return f"{settings.display_number_prefix}{value:0{settings.display_number_width}d}"

    async def create_order(
        self,
        display_number: str,
        customer_id: uuid.UUID,
        restaurant_id: uuid.UUID,
        breakdown: PriceBreakdown,
        delivery_address: str,
        customer_note: Optional[str] = None,
    ) -> Order:
        """
        Create a PENDING order with its line snapshots and first history entry.

        Args:
            display_number: Allocated order number
            customer_id: Customer placing the order
            restaurant_id: Restaurant receiving the order
            breakdown: Frozen price breakdown
            delivery_address: Delivery address
            customer_note: Optional customer note

        Returns:
            The flushed order

        Raises:
            UpstreamUnavailableError: If the insert fails
        """
        order = Order(
            id=uuid.uuid4(),
            display_number=display_number,
            customer_id=customer_id,
            restaurant_id=restaurant_id,
            status=OrderStatus.PENDING,
            delivery_address=delivery_address,
            distance_km=breakdown.distance_km,
            items_total=breakdown.items_total,
            delivery_charge=breakdown.delivery_charge,
            platform_fee=breakdown.platform_fee,
            total_amount=breakdown.total_amount,
            commission_percentage_applied=breakdown.commission_percentage_applied,
            admin_commission_amount=breakdown.admin_commission_amount,
            restaurant_earning_amount=breakdown.restaurant_earning_amount,
            rates_version=breakdown.rates_version,
            customer_note=customer_note,
        )
        order.items = [
            OrderItem(
                position=position,
                menu_item_id=line.menu_item_id,
                name_snapshot=line.name,
                unit_price_snapshot=line.unit_price,
                quantity=line.quantity,
                line_subtotal=line.line_subtotal,
            )
            for position, line in enumerate(breakdown.lines)
        ]
        order.status_history = [
            OrderStatusHistory(
                status=OrderStatus.PENDING,
                entered_at=utc_now(),
                actor_id=customer_id,
                actor_role=ActorRole.CUSTOMER,
            )
        ]

        try:
            self.session.add(order)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Order creation failed",
                display_number=display_number,
                error=str(e),
            )
            raise UpstreamUnavailableError(
                "Order creation failed", display_number=display_number
            ) from e

        logger.debug(
            "Order row created",
            order_id=str(order.id),
            display_number=display_number,
            item_count=len(order.items),
        )
        return order

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        """
        Get an order by ID, refreshing any copy already in the session.

        Raises:
            UpstreamUnavailableError: If the query fails
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return await self._fetch_one(stmt, order_id=str(order_id))

    async def get_order_scoped(
        self,
        order_id: uuid.UUID,
        actor_id: uuid.UUID,
        actor_role: ActorRole,
        restaurant_id: Optional[uuid.UUID] = None,
    ) -> Optional[Order]:
        """
        Get an order only if it lies within the actor's scope.

        Customers see their own orders, restaurants the orders placed with
        their restaurant, delivery partners the orders assigned to them plus
        READY unassigned ones, admins everything.

        Args:
            order_id: Order identifier
            actor_id: Acting user
            actor_role: Role of the acting user
            restaurant_id: Restaurant owned by the actor, for restaurant actors

        Returns:
            Order if visible to the actor, None otherwise
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )

        if actor_role == ActorRole.CUSTOMER:
            stmt = stmt.where(Order.customer_id == actor_id)
        elif actor_role == ActorRole.RESTAURANT:
            if restaurant_id is None:
                return None
            stmt = stmt.where(Order.restaurant_id == restaurant_id)
        elif actor_role == ActorRole.DELIVERY:
            stmt = stmt.where(
                (Order.delivery_partner_id == actor_id)
                | (
                    (Order.status == OrderStatus.READY)
                    & Order.delivery_partner_id.is_(None)
                )
            )

        return await self._fetch_one(
            stmt, order_id=str(order_id), actor_role=actor_role.value
        )

    async def conditional_update_status(
        self,
        order_id: uuid.UUID,
        expected: OrderStatus,
        target: OrderStatus,
        **values: Any,
    ) -> bool:
        """
        Move an order from ``expected`` to ``target`` if it is still there.

        Args:
            order_id: Order identifier
            expected: Status the order must currently hold
            target: New status
            **values: Additional columns written with the status

        Returns:
            True if this write won, False if the order was no longer in
            ``expected``
        """
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status == expected)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        return await self._execute_conditional(
            stmt,
            order_id=str(order_id),
            expected=expected.value,
            target=target.value,
        )

    async def assign_partner(
        self, order_id: uuid.UUID, partner_id: uuid.UUID
    ) -> bool:
        """
        Assign a READY, unassigned order to a partner without an active delivery.

        All three preconditions are part of one conditional UPDATE; the
        partial unique index on active deliveries backs the last one.

        Returns:
            True if the assignment was written

        Raises:
            PartnerBusyError: If the unique index rejected the write
        """
        active = aliased(Order)
        partner_has_active_delivery = exists().where(
            active.delivery_partner_id == partner_id,
            active.status.in_(list(ACTIVE_DELIVERY_STATUSES)),
        )

        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.READY,
                Order.delivery_partner_id.is_(None),
                ~partner_has_active_delivery,
            )
            .values(status=OrderStatus.ASSIGNED, delivery_partner_id=partner_id)
            .execution_options(synchronize_session=False)
        )

        try:
            return await self._execute_conditional(
                stmt,
                order_id=str(order_id),
                partner_id=str(partner_id),
                target=OrderStatus.ASSIGNED.value,
            )
        except IntegrityError as e:
            logger.info(
                "Assignment rejected by active delivery index",
                order_id=str(order_id),
                partner_id=str(partner_id),
            )
            raise PartnerBusyError(
                "Delivery partner already has an active delivery",
                partner_id=str(partner_id),
            ) from e

    async def rate_order(
        self,
        order_id: uuid.UUID,
        customer_id: uuid.UUID,
        rating: int,
        review: Optional[str],
    ) -> bool:
        """
        Record a rating on a delivered, unrated order of the customer.

        Returns:
            True if the rating was written
        """
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.customer_id == customer_id,
                Order.status == OrderStatus.DELIVERED,
                Order.rating.is_(None),
            )
            .values(rating=rating, review=review, reviewed_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return await self._execute_conditional(
            stmt, order_id=str(order_id), operation="rate"
        )

    async def append_history(
        self,
        order_id: uuid.UUID,
        status: OrderStatus,
        actor_id: Optional[uuid.UUID],
        actor_role: Optional[ActorRole],
    ) -> OrderStatusHistory:
        """
        Append the entry for a status the order just entered.

        Raises:
            UpstreamUnavailableError: If the insert fails
        """
        entry = OrderStatusHistory(
            order_id=order_id,
            status=status,
            entered_at=utc_now(),
            actor_id=actor_id,
            actor_role=actor_role,
        )

        try:
            self.session.add(entry)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to record status history",
                order_id=str(order_id),
                status=status.value,
                error=str(e),
            )
            raise UpstreamUnavailableError(
                "Status history write failed", order_id=str(order_id)
            ) from e

        return entry

    async def has_active_delivery(self, partner_id: uuid.UUID) -> bool:
        """Check whether the partner holds an order in ASSIGNED or PICKED_UP."""
        stmt = select(
            exists().where(
                Order.delivery_partner_id == partner_id,
                Order.status.in_(list(ACTIVE_DELIVERY_STATUSES)),
            )
        )
        try:
            result = await self.session.execute(stmt)
            return bool(result.scalar())
        except SQLAlchemyError as e:
            logger.error(
                "Failed to check active delivery",
                partner_id=str(partner_id),
                error=str(e),
            )
            raise UpstreamUnavailableError(
                "Active delivery lookup failed", partner_id=str(partner_id)
            ) from e

    async def get_active_delivery(self, partner_id: uuid.UUID) -> Optional[Order]:
        """Get the partner's order in ASSIGNED or PICKED_UP, if any."""
        stmt = select(Order).where(
            Order.delivery_partner_id == partner_id,
            Order.status.in_(list(ACTIVE_DELIVERY_STATUSES)),
        )
        return await self._fetch_one(stmt, partner_id=str(partner_id))

    async def list_orders(
        self,
        customer_id: Optional[uuid.UUID] = None,
        restaurant_id: Optional[uuid.UUID] = None,
        delivery_partner_id: Optional[uuid.UUID] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """
        List orders, newest first, with optional filters.

        Args:
            customer_id: Only orders of this customer
            restaurant_id: Only orders placed with this restaurant
            delivery_partner_id: Only orders assigned to this partner
            status: Only orders in this status
            skip: Number of records to skip
            limit: Maximum number of records to return

        Returns:
            Tuple of (orders, total_count)

        Raises:
            UpstreamUnavailableError: If the query fails
        """
        conditions = []
        if customer_id is not None:
            conditions.append(Order.customer_id == customer_id)
        if restaurant_id is not None:
            conditions.append(Order.restaurant_id == restaurant_id)
        if delivery_partner_id is not None:
            conditions.append(Order.delivery_partner_id == delivery_partner_id)
        if status is not None:
            conditions.append(Order.status == status)

        stmt = (
            select(Order)
            .where(and_(true(), *conditions))
            .order_by(Order.created_at.desc(), Order.display_number.desc())
            .offset(skip)
            .limit(limit)
        )
        count_stmt = (
            select(func.count()).select_from(Order).where(and_(true(), *conditions))
        )

        try:
            result = await self.session.execute(stmt)
            count_result = await self.session.execute(count_stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to list orders",
                status=status.value if status else None,
                error=str(e),
            )
            raise UpstreamUnavailableError("Order listing failed") from e

        orders = result.scalars().all()
        total_count = count_result.scalar_one()

        logger.debug(
            "Orders listed",
            count=len(orders),
            total_count=total_count,
            skip=skip,
            limit=limit,
        )
        return orders, total_count

    async def list_available_for_delivery(self, limit: int = 20) -> Sequence[Order]:
        """
        List READY, unassigned orders, the ones ready longest first.

        Raises:
            UpstreamUnavailableError: If the query fails
        """
        ready_at = (
            select(OrderStatusHistory.entered_at)
            .where(
                OrderStatusHistory.order_id == Order.id,
                OrderStatusHistory.status == OrderStatus.READY,
            )
            .scalar_subquery()
        )
        stmt = (
            select(Order)
            .where(
                Order.status == OrderStatus.READY,
                Order.delivery_partner_id.is_(None),
            )
            .order_by(ready_at.asc(), Order.display_number.asc())
            .limit(limit)
        )

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to list available deliveries", error=str(e))
            raise UpstreamUnavailableError("Available delivery listing failed") from e

        return result.scalars().all()

    async def list_delivery_history(
        self, partner_id: uuid.UUID, skip: int = 0, limit: int = 20
    ) -> Sequence[Order]:
        """
        List a partner's DELIVERED orders, most recent delivery first.

        Raises:
            UpstreamUnavailableError: If the query fails
        """
        delivered_at = (
            select(OrderStatusHistory.entered_at)
            .where(
                OrderStatusHistory.order_id == Order.id,
                OrderStatusHistory.status == OrderStatus.DELIVERED,
            )
            .scalar_subquery()
        )
        stmt = (
            select(Order)
            .where(
                Order.delivery_partner_id == partner_id,
                Order.status == OrderStatus.DELIVERED,
            )
            .order_by(delivered_at.desc(), Order.display_number.desc())
            .offset(skip)
            .limit(limit)
        )

        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to list delivery history",
                partner_id=str(partner_id),
                error=str(e),
            )
            raise UpstreamUnavailableError(
                "Delivery history listing failed", partner_id=str(partner_id)
            ) from e

        return result.scalars().all()

    async def _fetch_one(self, stmt, **context: Any) -> Optional[Order]:
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", error=str(e), **context)
            raise UpstreamUnavailableError("Order lookup failed", **context) from e

    async def _execute_conditional(self, stmt, **context: Any) -> bool:
        try:
            result = await self.session.execute(stmt)
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error("Conditional order update failed", error=str(e), **context)
            raise UpstreamUnavailableError("Order update failed", **context) from e

        won = result.rowcount == 1
        logger.debug("Conditional order update", won=won, **context)
        return won
