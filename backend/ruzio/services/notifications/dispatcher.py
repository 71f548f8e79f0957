"""
Order notification dispatch.

Turns an order entering a status into a rendered notification for the right
recipient and hands it to the configured sink. Dispatch happens after the
order write has committed and never raises: delivery problems are logged and
dropped.
"""

from typing import Any, Dict, Optional

from ruzio.core.logging import get_logger
from ruzio.database.models.order import Order
from ruzio.services.catalog.repository import CatalogRepository
from ruzio.services.notifications.service import NotificationSink
from ruzio.services.notifications.templates import TemplateEngine, get_template_engine
from ruzio.services.orders.enums import OrderStatus
from ruzio.services.orders.state_machine import (
    OrderStateMachine,
    Recipient,
    get_order_state_machine,
)

logger = get_logger(__name__)


class OrderNotifier:
    """
    Emits the notification planned for each status an order enters.
    """

    def __init__(
        self,
        sink: Optional[NotificationSink],
        catalog: CatalogRepository,
        template_engine: Optional[TemplateEngine] = None,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        self.sink = sink
        self.catalog = catalog
        self.template_engine = template_engine or get_template_engine()
        self.state_machine = state_machine or get_order_state_machine()

    async def order_entered(self, order: Order, status: OrderStatus) -> None:
        """
        Notify the recipient planned for ``status``.

        Args:
            order: Order as committed
            status: Status the order just entered
        """
        if self.sink is None:
            return

        plan = self.state_machine.plan_notification(status)
        if plan is None:
            return

        try:
            if plan.recipient == Recipient.CUSTOMER:
                recipient_id = order.customer_id
            else:
                restaurant = await self.catalog.get_restaurant(order.restaurant_id)
                if restaurant is None or restaurant.owner_id is None:
                    logger.warning(
                        "No restaurant owner to notify",
                        order_id=str(order.id),
                        restaurant_id=str(order.restaurant_id),
                    )
                    return
                recipient_id = restaurant.owner_id

            title, body = self.template_engine.render(
                plan.kind, self._build_context(order, status)
            )
            await self.sink.notify(
                user_id=recipient_id,
                kind=plan.kind,
                title=title,
                body=body,
                related_order_id=order.id,
            )
        except Exception as e:
            logger.warning(
                "Order notification failed",
                order_id=str(order.id),
                status=status.value,
                kind=plan.kind.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            # Notification failure never affects the committed order

    @staticmethod
    def _build_context(order: Order, status: OrderStatus) -> Dict[str, Any]:
        return {
            "display_number": order.display_number,
            "status": status.value,
            "status_label": status.display_name,
            "item_count": sum(item.quantity for item in order.items),
            "items_total": order.items_total,
            "total_amount": order.total_amount,
            "customer_note": order.customer_note,
            "rejection_reason": order.rejection_reason,
        }
