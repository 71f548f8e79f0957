"""Order state machine implementation with actor-scoped transition rules.

This module implements the OrderStateMachine class deciding whether an actor
may move an order to a target status, and which notification the move
produces. It holds no database handle: the order service loads the order,
asks the state machine, and applies the result with a conditional write.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set

from ruzio.core.logging import get_logger
from ruzio.database.models.notification import NotificationKind
from ruzio.services.orders.enums import (
    ActorRole,
    OrderStatus,
    get_allowed_order_transitions,
)
from ruzio.services.orders.exceptions import (
    InvalidTransitionError,
    UnauthorizedActorError,
)

logger = get_logger(__name__)


class Ownership(str, Enum):
    """Relationship the actor must have with the order."""

    CUSTOMER = "customer"
    RESTAURANT = "restaurant"
    ASSIGNED_PARTNER = "assigned_partner"
    UNASSIGNED = "unassigned"


class Recipient(str, Enum):
    """Who a transition notification is addressed to."""

    CUSTOMER = "customer"
    RESTAURANT_OWNER = "restaurant_owner"


@dataclass(frozen=True)
class ActorContext:
    """
    Opaque identity of the caller.

    Attributes:
        actor_id: Acting user
        role: Actor role
        restaurant_id: Restaurant owned by the actor, for restaurant actors
    """

    actor_id: uuid.UUID
    role: ActorRole
    restaurant_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class TransitionRule:
    source: OrderStatus
    target: OrderStatus
    role: ActorRole
    ownership: Ownership


@dataclass(frozen=True)
class NotificationPlan:
    recipient: Recipient
    kind: NotificationKind


TRANSITION_RULES: Dict[OrderStatus, TransitionRule] = {
    rule.target: rule
    for rule in (
        TransitionRule(
            OrderStatus.PENDING, OrderStatus.ACCEPTED,
            ActorRole.RESTAURANT, Ownership.RESTAURANT,
        ),
        TransitionRule(
            OrderStatus.PENDING, OrderStatus.REJECTED,
            ActorRole.RESTAURANT, Ownership.RESTAURANT,
        ),
        TransitionRule(
            OrderStatus.PENDING, OrderStatus.CANCELLED,
            ActorRole.CUSTOMER, Ownership.CUSTOMER,
        ),
        TransitionRule(
            OrderStatus.ACCEPTED, OrderStatus.PREPARING,
            ActorRole.RESTAURANT, Ownership.RESTAURANT,
        ),
        TransitionRule(
            OrderStatus.PREPARING, OrderStatus.READY,
            ActorRole.RESTAURANT, Ownership.RESTAURANT,
        ),
        TransitionRule(
            OrderStatus.READY, OrderStatus.ASSIGNED,
            ActorRole.DELIVERY, Ownership.UNASSIGNED,
        ),
        TransitionRule(
            OrderStatus.ASSIGNED, OrderStatus.PICKED_UP,
            ActorRole.DELIVERY, Ownership.ASSIGNED_PARTNER,
        ),
        TransitionRule(
            OrderStatus.PICKED_UP, OrderStatus.DELIVERED,
            ActorRole.DELIVERY, Ownership.ASSIGNED_PARTNER,
        ),
    )
}

NOTIFICATION_PLANS: Dict[OrderStatus, NotificationPlan] = {
    OrderStatus.PENDING: NotificationPlan(
        Recipient.RESTAURANT_OWNER, NotificationKind.NEW_ORDER
    ),
    OrderStatus.ACCEPTED: NotificationPlan(
        Recipient.CUSTOMER, NotificationKind.ORDER_UPDATE
    ),
    OrderStatus.REJECTED: NotificationPlan(
        Recipient.CUSTOMER, NotificationKind.ORDER_CANCELLED
    ),
    OrderStatus.CANCELLED: NotificationPlan(
        Recipient.RESTAURANT_OWNER, NotificationKind.ORDER_CANCELLED
    ),
    OrderStatus.PREPARING: NotificationPlan(
        Recipient.CUSTOMER, NotificationKind.ORDER_UPDATE
    ),
    OrderStatus.READY: NotificationPlan(
        Recipient.CUSTOMER, NotificationKind.ORDER_READY
    ),
    OrderStatus.ASSIGNED: NotificationPlan(
        Recipient.CUSTOMER, NotificationKind.ORDER_ASSIGNED
    ),
    OrderStatus.PICKED_UP: NotificationPlan(
        Recipient.CUSTOMER, NotificationKind.ORDER_UPDATE
    ),
    OrderStatus.DELIVERED: NotificationPlan(
        Recipient.CUSTOMER, NotificationKind.ORDER_UPDATE
    ),
}


class OrderStateMachine:
    """State machine for order lifecycle transitions.

    Validation order is fixed: the order's current status is checked against
    the source status of the target first, the actor second. Callers resolve
    visibility (not found) before asking.
    """

    def __init__(self, rules: Optional[Dict[OrderStatus, TransitionRule]] = None):
        self.rules = rules or TRANSITION_RULES

    def get_rule(self, current: OrderStatus, target: OrderStatus) -> TransitionRule:
        """Get the rule for moving from ``current`` to ``target``.

        Raises:
            InvalidTransitionError: If no edge leads from ``current`` to
                ``target``
        """
        rule = self.rules.get(target)
        if rule is None or rule.source != current:
            allowed = sorted(s.value for s in get_allowed_order_transitions(current))
            raise InvalidTransitionError(
                f"Cannot move order from {current.value} to {target.value}",
                current_status=current.value,
                target_status=target.value,
                allowed=allowed,
            )
        return rule

    def validate_transition(
        self,
        order,
        target: OrderStatus,
        actor: ActorContext,
    ) -> TransitionRule:
        """Validate that ``actor`` may move ``order`` to ``target``.

        Args:
            order: Order as currently persisted
            target: Desired status
            actor: Caller identity

        Returns:
            The matching transition rule

        Raises:
            InvalidTransitionError: If the order is not in the source status
            UnauthorizedActorError: If the actor's role or relationship to
                the order does not match the rule
        """
        rule = self.get_rule(order.status, target)

        if not self.is_actor_allowed(order, rule, actor):
            logger.info(
                "Transition refused for actor",
                order_id=str(order.id),
                target_status=target.value,
                actor_role=actor.role.value,
            )
            raise UnauthorizedActorError(
                f"Actor may not move this order to {target.value}",
                order_id=str(order.id),
                actor_role=actor.role.value,
                target_status=target.value,
            )

        return rule

    def is_actor_allowed(
        self, order, rule: TransitionRule, actor: ActorContext
    ) -> bool:
        """Check the actor's role and relationship to the order."""
        if actor.role != rule.role:
            return False

        if rule.ownership == Ownership.CUSTOMER:
            return order.customer_id == actor.actor_id
        if rule.ownership == Ownership.RESTAURANT:
            return (
                actor.restaurant_id is not None
                and order.restaurant_id == actor.restaurant_id
            )
        if rule.ownership == Ownership.ASSIGNED_PARTNER:
            return order.delivery_partner_id == actor.actor_id
        if rule.ownership == Ownership.UNASSIGNED:
            return order.delivery_partner_id is None
        return False

    def get_allowed_transitions(self, order, actor: ActorContext) -> Set[OrderStatus]:
        """Statuses this actor could move the order to right now."""
        return {
            target
            for target in get_allowed_order_transitions(order.status)
            if target in self.rules
            and self.is_actor_allowed(order, self.rules[target], actor)
        }

    def plan_notification(self, status: OrderStatus) -> Optional[NotificationPlan]:
        """Notification emitted when an order enters ``status``."""
        return NOTIFICATION_PLANS.get(status)


_state_machine = OrderStateMachine()


def get_order_state_machine() -> OrderStateMachine:
    """Get the shared state machine instance."""
    return _state_machine
