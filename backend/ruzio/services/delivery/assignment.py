"""
Delivery assignment arbiter.

Delivery partners pick READY orders themselves. Many partners may try to take
the same order at once, so assignment is a single conditional UPDATE that
requires the order to still be READY and unassigned and the partner to hold
no other active delivery. Exactly one attempt wins; the others are told why
they lost. A partial unique index on active deliveries backs the last rule at
the storage level.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ruzio.core.config import Settings, get_settings
from ruzio.core.logging import get_logger
from ruzio.database.models.order import Order
from ruzio.services.catalog.repository import CatalogRepository
from ruzio.services.notifications.dispatcher import OrderNotifier
from ruzio.services.notifications.service import NotificationSink
from ruzio.services.orders.enums import ActorRole, OrderStatus
from ruzio.services.orders.exceptions import (
    AlreadyAssignedError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderServiceError,
    OrderValidationError,
    PartnerBusyError,
    UnauthorizedActorError,
    UpstreamUnavailableError,
)
from ruzio.services.orders.repository import OrderRepository
from ruzio.services.orders.state_machine import OrderStateMachine

logger = get_logger(__name__)


class AssignmentArbiter:
    """
    Race-safe delivery partner self-assignment and partner-side reads.
    """

    def __init__(
        self,
        session: AsyncSession,
        notification_sink: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        """
        Initialize assignment arbiter.

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
        self.notifier = OrderNotifier(
            notification_sink, self.catalog, state_machine=state_machine
        )

    async def assign(self, order_id: uuid.UUID, partner_id: uuid.UUID) -> Order:
        """
        Assign a READY order to the requesting delivery partner.

        Args:
            order_id: Order to take
            partner_id: Delivery partner taking it

        Returns:
            The order in ASSIGNED with the partner set

        Raises:
            OrderNotFoundError: If the order does not exist
            AlreadyAssignedError: If another partner holds the order
            InvalidTransitionError: If the order is not READY
            UnauthorizedActorError: If the partner is not an active, approved
                delivery user
            PartnerBusyError: If the partner already has an active delivery
        """
        try:
            order = await self.repository.get_order(order_id)
            if order is None:
                raise OrderNotFoundError("Order not found", order_id=str(order_id))
            self._check_assignable(order)

            partner = await self.catalog.get_user(partner_id)
            if partner is None or not partner.can_deliver:
                raise UnauthorizedActorError(
                    "Only active, approved delivery partners can take orders",
                    partner_id=str(partner_id),
                )

            if await self.repository.has_active_delivery(partner_id):
                raise PartnerBusyError(
                    "Delivery partner already has an active delivery",
                    partner_id=str(partner_id),
                )

            won = await self.repository.assign_partner(order_id, partner_id)
            if not won:
                await self.session.rollback()
                await self._explain_lost_assignment(order_id, partner_id)

            await self.repository.append_history(
                order_id, OrderStatus.ASSIGNED, partner_id, ActorRole.DELIVERY
            )
            await self._commit(order_id=str(order_id), partner_id=str(partner_id))
        except OrderServiceError as e:
            await self.session.rollback()
            if isinstance(e, (AlreadyAssignedError, PartnerBusyError)):
                logger.info(
                    "Assignment conflict",
                    order_id=str(order_id),
                    partner_id=str(partner_id),
                    kind=e.kind,
                )
            raise

        order = await self.repository.get_order(order_id)

        logger.info(
            "Order assigned",
            order_id=str(order_id),
            display_number=order.display_number,
            partner_id=str(partner_id),
        )

        await self.notifier.order_entered(order, OrderStatus.ASSIGNED)
        return order

    async def list_available(self, limit: int = 20) -> Sequence[Order]:
        """List READY unassigned orders, the ones ready longest first."""
        self._check_limit(limit)
        return await self.repository.list_available_for_delivery(limit=limit)

    async def get_active_delivery(self, partner_id: uuid.UUID) -> Optional[Order]:
        """Get the partner's order in ASSIGNED or PICKED_UP, if any."""
        return await self.repository.get_active_delivery(partner_id)

    async def get_delivery_history(
        self, partner_id: uuid.UUID, skip: int = 0, limit: int = 20
    ) -> Sequence[Order]:
        """List the partner's delivered orders, most recent first."""
        if skip < 0:
            raise OrderValidationError("skip must be >= 0", skip=skip)
        self._check_limit(limit)
        return await self.repository.list_delivery_history(
            partner_id, skip=skip, limit=limit
        )

    async def _explain_lost_assignment(
        self, order_id: uuid.UUID, partner_id: uuid.UUID
    ) -> None:
        """Re-read after a lost conditional write and raise the reason."""
        order = await self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        self._check_assignable(order)

        if await self.repository.has_active_delivery(partner_id):
            raise PartnerBusyError(
                "Delivery partner already has an active delivery",
                partner_id=str(partner_id),
            )

        raise InvalidTransitionError(
            "Order could not be assigned", order_id=str(order_id)
        )

    @staticmethod
    def _check_assignable(order: Order) -> None:
        if order.delivery_partner_id is not None:
            raise AlreadyAssignedError(
                "Order already taken by another delivery partner",
                order_id=str(order.id),
            )
        if order.status != OrderStatus.READY:
            raise InvalidTransitionError(
                f"Only ready orders can be assigned, order is {order.status.value}",
                order_id=str(order.id),
                status=order.status.value,
            )

    def _check_limit(self, limit: int) -> None:
        if not 1 <= limit <= self.settings.max_page_size:
            raise OrderValidationError(
                f"limit must be 1-{self.settings.max_page_size}", limit=limit
            )

    async def _commit(self, **context) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error("Assignment commit failed", error=str(e), **context)
            raise UpstreamUnavailableError("Assignment write failed", **context) from e
