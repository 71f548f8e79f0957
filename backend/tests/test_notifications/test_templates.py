"""
Tests for notification templates and the order notifier.
"""

import uuid
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from ruzio.database.models.notification import NotificationKind
from ruzio.services.notifications.dispatcher import OrderNotifier
from ruzio.services.notifications.templates import (
    TemplateEngine,
    TemplateRenderError,
    get_template_engine,
)
from ruzio.services.orders.enums import OrderStatus
from ruzio.services.pricing.pricing_engine import RestaurantSnapshot

OWNER_ID = uuid.uuid4()


def context(**overrides):
    values = {
        "display_number": "RUZ000042",
        "status": "accepted",
        "status_label": "Accepted",
        "item_count": 3,
        "items_total": Decimal("1250.5"),
        "total_amount": Decimal("1300.00"),
        "customer_note": None,
        "rejection_reason": None,
    }
    values.update(overrides)
    return values


class TestTemplateEngine:
    """Test rendering per notification kind."""

    def test_new_order(self) -> None:
        title, message = TemplateEngine().render(
            NotificationKind.NEW_ORDER, context(customer_note="No onions")
        )

        assert title == "New order RUZ000042"
        assert message == (
            "Order RUZ000042 was placed with 3 items for 1,250.50. Note: No onions"
        )

    def test_single_item_and_no_note(self) -> None:
        _, message = TemplateEngine().render(
            NotificationKind.NEW_ORDER, context(item_count=1)
        )

        assert message == "Order RUZ000042 was placed with 1 item for 1,250.50."

    def test_order_update(self) -> None:
        title, message = TemplateEngine().render(
            NotificationKind.ORDER_UPDATE,
            context(status="picked_up", status_label="Picked Up"),
        )

        assert title == "Order RUZ000042 picked up"
        assert message == "Your order RUZ000042 is now picked up."

    def test_rejection_reason_is_included(self) -> None:
        _, message = TemplateEngine().render(
            NotificationKind.ORDER_CANCELLED,
            context(status_label="Rejected", rejection_reason="Kitchen closed"),
        )

        assert message == "Order RUZ000042 was rejected. Reason: Kitchen closed"

    def test_missing_variable_fails_loudly(self) -> None:
        with pytest.raises(TemplateRenderError) as exc_info:
            TemplateEngine().render(NotificationKind.ORDER_READY, {})

        assert exc_info.value.template_name == "order_ready/title"

    def test_custom_templates(self) -> None:
        engine = TemplateEngine(
            {"general/title": "Hi {{ name }}", "general/message": "Bye {{ name }}"}
        )

        assert engine.render(NotificationKind.GENERAL, {"name": "Asha"}) == (
            "Hi Asha",
            "Bye Asha",
        )

    def test_shared_instance(self) -> None:
        assert get_template_engine() is get_template_engine()


def make_order():
    return SimpleNamespace(
        id=uuid.uuid4(),
        display_number="RUZ000007",
        customer_id=uuid.uuid4(),
        restaurant_id=uuid.uuid4(),
        items=[SimpleNamespace(quantity=2)],
        items_total=Decimal("200.00"),
        total_amount=Decimal("262.00"),
        customer_note=None,
        rejection_reason=None,
    )


class TestOrderNotifier:
    """Test recipient resolution and failure isolation."""

    @pytest.fixture
    def catalog(self) -> AsyncMock:
        catalog = AsyncMock()
        catalog.get_restaurant = AsyncMock(
            side_effect=lambda restaurant_id: RestaurantSnapshot(
                id=restaurant_id, is_open=True, is_approved=True, owner_id=OWNER_ID
            )
        )
        return catalog

    async def test_new_order_goes_to_owner(self, catalog) -> None:
        sink = AsyncMock()
        order = make_order()

        await OrderNotifier(sink, catalog).order_entered(order, OrderStatus.PENDING)

        sink.notify.assert_awaited_once()
        kwargs = sink.notify.await_args.kwargs
        assert kwargs["user_id"] == OWNER_ID
        assert kwargs["kind"] == NotificationKind.NEW_ORDER
        assert kwargs["related_order_id"] == order.id

    async def test_progress_goes_to_customer(self, catalog) -> None:
        sink = AsyncMock()
        order = make_order()

        await OrderNotifier(sink, catalog).order_entered(order, OrderStatus.READY)

        kwargs = sink.notify.await_args.kwargs
        assert kwargs["user_id"] == order.customer_id
        assert kwargs["kind"] == NotificationKind.ORDER_READY
        catalog.get_restaurant.assert_not_awaited()

    async def test_sink_errors_are_swallowed(self, catalog) -> None:
        sink = AsyncMock()
        sink.notify.side_effect = RuntimeError("boom")

        await OrderNotifier(sink, catalog).order_entered(
            make_order(), OrderStatus.ACCEPTED
        )

        sink.notify.assert_awaited_once()

    async def test_missing_owner_skips_notification(self, catalog) -> None:
        sink = AsyncMock()
        catalog.get_restaurant = AsyncMock(return_value=None)

        await OrderNotifier(sink, catalog).order_entered(
            make_order(), OrderStatus.CANCELLED
        )

        sink.notify.assert_not_awaited()

    async def test_without_sink_nothing_happens(self, catalog) -> None:
        await OrderNotifier(None, catalog).order_entered(
            make_order(), OrderStatus.PENDING
        )

        catalog.get_restaurant.assert_not_awaited()

