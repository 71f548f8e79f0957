"""
Order service for order lifecycle management.

This module implements the OrderService class orchestrating order placement,
quotes, actor-scoped status transitions, ratings and order reads. Every write
is one short transaction ending in a conditional update: the service loads
the order, lets the state machine validate the move, writes only if the order
is still in the expected status and commits. Notifications are emitted after
the commit.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ruzio.core.config import Settings, get_settings
from ruzio.core.logging import get_logger, log_performance
from ruzio.database.models.order import Order
from ruzio.services.catalog.repository import CatalogRepository
from ruzio.services.delivery.assignment import AssignmentArbiter
from ruzio.services.notifications.dispatcher import OrderNotifier
from ruzio.services.notifications.service import NotificationSink
from ruzio.services.orders.enums import ActorRole, OrderStatus
from ruzio.services.orders.exceptions import (
    AlreadyRatedError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderServiceError,
    OrderValidationError,
    UpstreamUnavailableError,
)
from ruzio.services.orders.repository import OrderRepository
from ruzio.services.orders.state_machine import (
    ActorContext,
    OrderStateMachine,
    get_order_state_machine,
)
from ruzio.services.pricing.pricing_engine import (
    PriceBreakdown,
    PricingEngine,
    RequestedLine,
)

logger = get_logger(__name__)


class OrderService:
    """
    Order service orchestrating pricing, persistence and transitions.

    Attributes:
        repository: Order repository for data access
        catalog: Catalog repository for restaurants, menus and rates
        state_machine: Transition rules
        pricing_engine: Pure pricing calculations
        notifier: Post-commit notification dispatch
    """

    def __init__(
        self,
        session: AsyncSession,
        notification_sink: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        """
        Initialize order service.

        Args:
            session: Async database session
            notification_sink: Optional receiver of order notifications
            settings: Optional settings override
            state_machine: Optional state machine override
        """
        self.session = session
        self.settings = settings or get_settings()
        self.repository = OrderRepository(session)
        self.catalog = CatalogRepository(session)
        self.state_machine = state_machine or get_order_state_machine()
        self.pricing_engine = PricingEngine(
            min_distance_km=self.settings.min_distance_km
        )
        self.notifier = OrderNotifier(
            notification_sink, self.catalog, state_machine=self.state_machine
        )

    async def quote_order(
        self,
        restaurant_id: uuid.UUID,
        lines: Sequence[RequestedLine],
        distance_km,
    ) -> PriceBreakdown:
        """
        Price an order without placing it.

        Returns:
            The breakdown placement would freeze right now

        Raises:
            PricingError: If the request cannot be priced
            UpstreamUnavailableError: If a catalog read fails
        """
        try:
            return await self._price(restaurant_id, lines, distance_km)
        finally:
            await self.session.rollback()

    async def place_order(
        self,
        customer_id: uuid.UUID,
        restaurant_id: uuid.UUID,
        lines: Sequence[RequestedLine],
        delivery_address: str,
        distance_km,
        customer_note: Optional[str] = None,
    ) -> Order:
        """
        Price and create a PENDING order.

        Args:
            customer_id: Customer placing the order
            restaurant_id: Restaurant to order from
            lines: Requested menu items and quantities
            delivery_address: Delivery address
            distance_km: Delivery distance
            customer_note: Optional note for the restaurant

        Returns:
            The placed order with its frozen breakdown

        Raises:
            OrderValidationError: If the address or note is invalid
            PricingError: If the request cannot be priced
            UpstreamUnavailableError: If a collaborator fails; nothing is
                persisted
        """
        address = (delivery_address or "").strip()
        if not address:
            raise OrderValidationError("Delivery address is required")
        if len(address) > 500:
            raise OrderValidationError("Delivery address is too long")
        note = self._clean_text(
            customer_note, self.settings.max_customer_note_length, "customer_note"
        )

        with log_performance(logger, "place_order", restaurant_id=str(restaurant_id)):
            try:
                breakdown = await self._price(restaurant_id, lines, distance_km)
                display_number = await self.repository.next_display_number()
                order = await self.repository.create_order(
                    display_number=display_number,
                    customer_id=customer_id,
                    restaurant_id=restaurant_id,
                    breakdown=breakdown,
                    delivery_address=address,
                    customer_note=note,
                )
                await self._commit(order_id=str(order.id))
            except OrderServiceError:
                await self.session.rollback()
                raise

        order = await self._reload(order.id)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            display_number=order.display_number,
            customer_id=str(customer_id),
            restaurant_id=str(restaurant_id),
            total_amount=str(order.total_amount),
            rates_version=order.rates_version,
        )

        await self.notifier.order_entered(order, OrderStatus.PENDING)
        return order

    async def transition(
        self,
        order_id: uuid.UUID,
        actor_id: uuid.UUID,
        actor_role: ActorRole,
        target_status: OrderStatus,
        rejection_reason: Optional[str] = None,
    ) -> Order:
        """
        Move an order to ``target_status`` on behalf of an actor.

        Checks run in a fixed order: visibility, source status, actor.

        Args:
            order_id: Order identifier
            actor_id: Acting user
            actor_role: Role of the acting user
            target_status: Desired status
            rejection_reason: Optional reason, recorded when rejecting

        Returns:
            The updated order

        Raises:
            OrderNotFoundError: If the order is not visible to the actor
            InvalidTransitionError: If the order is not in the source status,
                including when a concurrent writer moved it first
            UnauthorizedActorError: If the actor may not make this move
        """
        if target_status == OrderStatus.ASSIGNED and actor_role == ActorRole.DELIVERY:
            arbiter = AssignmentArbiter(
                self.session, self.notifier.sink, state_machine=self.state_machine
            )
            return await arbiter.assign(order_id, actor_id)

        reason = None
        if target_status == OrderStatus.REJECTED:
            reason = self._clean_text(
                rejection_reason,
                self.settings.max_rejection_reason_length,
                "rejection_reason",
            )

        try:
            actor = await self._actor_context(actor_id, actor_role)
            order = await self._get_visible_order(order_id, actor)
            rule = self.state_machine.validate_transition(order, target_status, actor)

            values = {"rejection_reason": reason} if reason is not None else {}
            won = await self.repository.conditional_update_status(
                order.id, rule.source, target_status, **values
            )
            if not won:
                logger.info(
                    "Transition lost to a concurrent update",
                    order_id=str(order_id),
                    expected_status=rule.source.value,
                    target_status=target_status.value,
                )
                raise InvalidTransitionError(
                    f"Order is no longer {rule.source.value}",
                    order_id=str(order_id),
                    target_status=target_status.value,
                )

            await self.repository.append_history(
                order.id, target_status, actor_id, actor_role
            )
            await self._commit(order_id=str(order_id))
        except OrderServiceError:
            await self.session.rollback()
            raise

        order = await self._reload(order_id)

        logger.info(
            "Order status changed",
            order_id=str(order_id),
            display_number=order.display_number,
            from_status=rule.source.value,
            to_status=target_status.value,
            actor_role=actor_role.value,
        )

        await self.notifier.order_entered(order, target_status)
        return order

    async def assign_delivery(
        self, order_id: uuid.UUID, partner_id: uuid.UUID
    ) -> Order:
        """Assign a READY order to a delivery partner."""
        return await self.transition(
            order_id, partner_id, ActorRole.DELIVERY, OrderStatus.ASSIGNED
        )

    async def rate_order(
        self,
        order_id: uuid.UUID,
        customer_id: uuid.UUID,
        rating: int,
        review: Optional[str] = None,
    ) -> Order:
        """
        Rate a delivered order, once.

        Raises:
            OrderValidationError: If the rating or review is malformed
            OrderNotFoundError: If the order is not the customer's
            InvalidTransitionError: If the order is not delivered
            AlreadyRatedError: If the order already carries a rating
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise OrderValidationError(
                "Rating must be an integer from 1 to 5", rating=rating
            )
        review_text = self._clean_text(
            review, self.settings.max_review_length, "review"
        )

        try:
            order = await self.repository.get_order_scoped(
                order_id, customer_id, ActorRole.CUSTOMER
            )
            if order is None:
                raise OrderNotFoundError("Order not found", order_id=str(order_id))
            self._check_rateable(order)

            won = await self.repository.rate_order(
                order_id, customer_id, rating, review_text
            )
            if not won:
                order = await self.repository.get_order(order_id)
                self._check_rateable(order)
                raise InvalidTransitionError(
                    "Order can no longer be rated", order_id=str(order_id)
                )

            await self._commit(order_id=str(order_id))
        except OrderServiceError:
            await self.session.rollback()
            raise

        logger.info("Order rated", order_id=str(order_id), rating=rating)
        return await self._reload(order_id)

    async def get_order(
        self,
        order_id: uuid.UUID,
        actor_id: uuid.UUID,
        actor_role: ActorRole,
    ) -> Order:
        """
        Get an order visible to the actor.

        Raises:
            OrderNotFoundError: If the order does not exist or is outside the
                actor's scope
        """
        actor = await self._actor_context(actor_id, actor_role)
        return await self._get_visible_order(order_id, actor)

    async def list_customer_orders(
        self,
        customer_id: uuid.UUID,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """List a customer's orders, newest first."""
        self._check_page(skip, limit)
        return await self.repository.list_orders(
            customer_id=customer_id, status=status, skip=skip, limit=limit
        )

    async def list_restaurant_orders(
        self,
        owner_id: uuid.UUID,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """
        List the orders of the restaurant owned by ``owner_id``, newest first.

        Raises:
            OrderNotFoundError: If the owner has no restaurant
        """
        self._check_page(skip, limit)
        restaurant = await self.catalog.get_restaurant_by_owner(owner_id)
        if restaurant is None:
            raise OrderNotFoundError("Restaurant not found", owner_id=str(owner_id))
        return await self.repository.list_orders(
            restaurant_id=restaurant.id, status=status, skip=skip, limit=limit
        )

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Order], int]:
        """List all orders, newest first. Admin only at the API layer."""
        self._check_page(skip, limit)
        return await self.repository.list_orders(status=status, skip=skip, limit=limit)

    async def _price(
        self,
        restaurant_id: uuid.UUID,
        lines: Sequence[RequestedLine],
        distance_km,
    ) -> PriceBreakdown:
        restaurant = await self.catalog.get_restaurant(restaurant_id)
        menu = await self.catalog.get_menu_items(line.menu_item_id for line in lines)
        rates = await self.catalog.get_rates()
        return self.pricing_engine.price(restaurant, menu, lines, distance_km, rates)

    async def _actor_context(
        self, actor_id: uuid.UUID, actor_role: ActorRole
    ) -> ActorContext:
        restaurant_id = None
        if actor_role == ActorRole.RESTAURANT:
            restaurant = await self.catalog.get_restaurant_by_owner(actor_id)
            restaurant_id = restaurant.id if restaurant else None
        return ActorContext(
            actor_id=actor_id, role=actor_role, restaurant_id=restaurant_id
        )

    async def _get_visible_order(
        self, order_id: uuid.UUID, actor: ActorContext
    ) -> Order:
        order = await self.repository.get_order_scoped(
            order_id, actor.actor_id, actor.role, restaurant_id=actor.restaurant_id
        )
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def _reload(self, order_id: uuid.UUID) -> Order:
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def _commit(self, **context) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error("Order commit failed", error=str(e), **context)
            raise UpstreamUnavailableError("Order write failed", **context) from e

    @staticmethod
    def _check_rateable(order: Order) -> None:
        if order.rating is not None:
            raise AlreadyRatedError("Order already rated", order_id=str(order.id))
        if order.status != OrderStatus.DELIVERED:
            raise InvalidTransitionError(
                "Only delivered orders can be rated",
                order_id=str(order.id),
                status=order.status.value,
            )

    def _check_page(self, skip: int, limit: int) -> None:
        if skip < 0 or not 1 <= limit <= self.settings.max_page_size:
            raise OrderValidationError(
                f"limit must be 1-{self.settings.max_page_size} and skip >= 0",
                skip=skip,
                limit=limit,
            )

    @staticmethod
    def _clean_text(value: Optional[str], max_length: int, field: str) -> Optional[str]:
        if value is None:
            return None
        text = value.strip()
        if not text:
            return None
        if len(text) > max_length:
            raise OrderValidationError(
                f"{field} must be at most {max_length} characters",
                field=field,
                max_length=max_length,
            )
        return text
