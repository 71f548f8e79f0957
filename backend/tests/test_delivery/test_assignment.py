"""
Test suite for the AssignmentArbiter.

Covers the self-assignment race, the one-active-delivery rule and the
partner-side reads.
"""

import asyncio
import uuid

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ruzio.database.models import NotificationKind, Order
from ruzio.services.delivery.assignment import AssignmentArbiter
from ruzio.services.orders.enums import OrderStatus
from ruzio.services.orders.exceptions import (
    AlreadyAssignedError,
    InvalidTransitionError,
    OrderConflictError,
    OrderNotFoundError,
    OrderValidationError,
    PartnerBusyError,
    UnauthorizedActorError,
)
from ruzio.services.orders.repository import OrderRepository
from ruzio.services.orders.service import OrderService


async def ready_order(driver) -> Order:
    order = await driver.place()
    return await driver.advance(order.id, OrderStatus.READY)


async def assign(session_factory, order_id, partner_id, sink=None) -> Order:
    async with session_factory() as session:
        return await AssignmentArbiter(session, notification_sink=sink).assign(
            order_id, partner_id
        )


# ============================================================================
# Assignment Tests
# ============================================================================


class TestAssign:
    """Test taking READY orders."""

    async def test_assign_ready_order(
        self, driver, session_factory, marketplace, sink
    ) -> None:
        order = await ready_order(driver)

        assigned = await assign(session_factory, order.id, marketplace.partner_id, sink)

        assert assigned.status == OrderStatus.ASSIGNED
        assert assigned.delivery_partner_id == marketplace.partner_id
        assert assigned.status_history[-1].status == OrderStatus.ASSIGNED
        assert assigned.status_history[-1].actor_id == marketplace.partner_id
        assert sink.kinds_for(marketplace.customer_id)[-1] == (
            NotificationKind.ORDER_ASSIGNED
        )

    async def test_concurrent_assigns_have_one_winner(
        self, driver, session_factory, marketplace
    ) -> None:
        order = await ready_order(driver)

        results = await asyncio.gather(
            assign(session_factory, order.id, marketplace.partner_id),
            assign(session_factory, order.id, marketplace.second_partner_id),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, Order)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], OrderConflictError)
        assert isinstance(losers[0], AlreadyAssignedError)

        async with session_factory() as session:
            persisted = await OrderRepository(session).get_order(order.id)
        assert persisted.delivery_partner_id == winners[0].delivery_partner_id
        assert [e.status for e in persisted.status_history].count(
            OrderStatus.ASSIGNED
        ) == 1

    async def test_already_assigned(self, driver, session_factory, marketplace) -> None:
        order = await ready_order(driver)
        await assign(session_factory, order.id, marketplace.partner_id)

        with pytest.raises(AlreadyAssignedError) as exc_info:
            await assign(session_factory, order.id, marketplace.second_partner_id)

        assert exc_info.value.status_code == 409

    async def test_assign_through_order_service(
        self, driver, session_factory, marketplace, sink
    ) -> None:
        order = await ready_order(driver)

        async with session_factory() as session:
            service = OrderService(session, notification_sink=sink)
            assigned = await service.assign_delivery(order.id, marketplace.partner_id)

        assert assigned.status == OrderStatus.ASSIGNED
        assert assigned.delivery_partner_id == marketplace.partner_id

    async def test_partner_with_active_delivery_is_busy(
        self, driver, session_factory, marketplace
    ) -> None:
        first = await ready_order(driver)
        second = await ready_order(driver)
        await assign(session_factory, first.id, marketplace.partner_id)

        with pytest.raises(PartnerBusyError):
            await assign(session_factory, second.id, marketplace.partner_id)

        async with session_factory() as session:
            untouched = await OrderRepository(session).get_order(second.id)
        assert untouched.status == OrderStatus.READY
        assert untouched.delivery_partner_id is None

    async def test_partner_is_busy_until_delivered(
        self, driver, session_factory, marketplace
    ) -> None:
        first = await ready_order(driver)
        second = await ready_order(driver)
        await driver.advance(first.id, OrderStatus.PICKED_UP)

        with pytest.raises(PartnerBusyError):
            await assign(session_factory, second.id, marketplace.partner_id)

        await driver.advance(first.id, OrderStatus.DELIVERED)
        assigned = await assign(session_factory, second.id, marketplace.partner_id)

        assert assigned.delivery_partner_id == marketplace.partner_id

    async def test_one_partner_racing_for_two_orders(
        self, driver, session_factory, marketplace
    ) -> None:
        first = await ready_order(driver)
        second = await ready_order(driver)

        results = await asyncio.gather(
            assign(session_factory, first.id, marketplace.partner_id),
            assign(session_factory, second.id, marketplace.partner_id),
            return_exceptions=True,
        )

        assert sum(isinstance(r, Order) for r in results) == 1
        assert sum(isinstance(r, PartnerBusyError) for r in results) == 1

    async def test_unapproved_partner(self, driver, session_factory, marketplace) -> None:
        order = await ready_order(driver)

        with pytest.raises(UnauthorizedActorError):
            await assign(session_factory, order.id, marketplace.unapproved_partner_id)

    async def test_non_delivery_user(self, driver, session_factory, marketplace) -> None:
        order = await ready_order(driver)

        with pytest.raises(UnauthorizedActorError):
            await assign(session_factory, order.id, marketplace.customer_id)

    async def test_order_not_ready(self, driver, session_factory, marketplace) -> None:
        order = await driver.place()
        await driver.advance(order.id, OrderStatus.PREPARING)

        with pytest.raises(InvalidTransitionError):
            await assign(session_factory, order.id, marketplace.partner_id)

    async def test_unknown_order(self, session_factory, marketplace) -> None:
        with pytest.raises(OrderNotFoundError):
            await assign(session_factory, uuid.uuid4(), marketplace.partner_id)

    async def test_database_rejects_second_active_delivery(
        self, driver, session_factory, marketplace
    ) -> None:
        """Test the partial unique index backs the one-active-delivery rule."""
        first = await ready_order(driver)
        second = await ready_order(driver)
        await assign(session_factory, first.id, marketplace.partner_id)

        async with session_factory() as session:
            with pytest.raises(IntegrityError):
                await session.execute(
                    update(Order)
                    .where(Order.id == second.id)
                    .values(
                        status=OrderStatus.ASSIGNED,
                        delivery_partner_id=marketplace.partner_id,
                    )
                )
            await session.rollback()


# ============================================================================
# Partner Read Tests
# ============================================================================


class TestPartnerReads:
    """Test available, active and history listings."""

    async def test_available_lists_ready_unassigned_oldest_first(
        self, driver, session_factory, marketplace
    ) -> None:
        first = await ready_order(driver)
        second = await ready_order(driver)
        pending = await driver.place()

        async with session_factory() as session:
            available = await AssignmentArbiter(session).list_available()
        assert [o.id for o in available] == [first.id, second.id]
        assert pending.id not in {o.id for o in available}

        await assign(session_factory, first.id, marketplace.partner_id)

        async with session_factory() as session:
            available = await AssignmentArbiter(session).list_available()
        assert [o.id for o in available] == [second.id]

    async def test_active_delivery_and_history(
        self, driver, session_factory, marketplace
    ) -> None:
        order = await ready_order(driver)

        async with session_factory() as session:
            assert await AssignmentArbiter(session).get_active_delivery(
                marketplace.partner_id
            ) is None

        await driver.advance(order.id, OrderStatus.PICKED_UP)
        async with session_factory() as session:
            active = await AssignmentArbiter(session).get_active_delivery(
                marketplace.partner_id
            )
        assert active.id == order.id

        await driver.advance(order.id, OrderStatus.DELIVERED)
        async with session_factory() as session:
            arbiter = AssignmentArbiter(session)
            assert await arbiter.get_active_delivery(marketplace.partner_id) is None
            history = await arbiter.get_delivery_history(marketplace.partner_id)
            other_history = await arbiter.get_delivery_history(
                marketplace.second_partner_id
            )

        assert [o.id for o in history] == [order.id]
        assert other_history == []

    @pytest.mark.parametrize("limit", [0, 101])
    async def test_limit_bounds(self, session, limit) -> None:
        with pytest.raises(OrderValidationError):
            await AssignmentArbiter(session).list_available(limit=limit)
