"""Order status and actor role enums for order lifecycle management.

This module defines the order status graph and the roles that act on it. The
graph is strictly forward: every non-initial status has exactly one source
status, no edge re-enters an earlier status and no edge skips one.
"""

from enum import Enum
from typing import Dict, FrozenSet, Set


class OrderStatus(str, Enum):
    """Order lifecycle status.

    Valid transitions:
    - PENDING -> ACCEPTED, REJECTED, CANCELLED
    - ACCEPTED -> PREPARING
    - PREPARING -> READY
    - READY -> ASSIGNED
    - ASSIGNED -> PICKED_UP
    - PICKED_UP -> DELIVERED
    - REJECTED, CANCELLED, DELIVERED -> (terminal states)
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PREPARING = "preparing"
    READY = "ready"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def display_name(self) -> str:
        """Human-readable display name."""
        return self.value.replace("_", " ").title()


class ActorRole(str, Enum):
    """Roles of the users acting on orders."""

    CUSTOMER = "customer"
    RESTAURANT = "restaurant"
    DELIVERY = "delivery"
    ADMIN = "admin"

    @classmethod
    def from_string(cls, value: str) -> "ActorRole":
        """Convert string to ActorRole enum.

        Raises:
            ValueError: If value is not a valid role
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join([r.value for r in cls])
            raise ValueError(
                f"Invalid actor role: {value}. Valid values are: {valid_values}"
            )


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.REJECTED, OrderStatus.CANCELLED, OrderStatus.DELIVERED}
)

# A delivery partner holds at most one order in these statuses at a time
ACTIVE_DELIVERY_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.ASSIGNED, OrderStatus.PICKED_UP}
)

ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.ACCEPTED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.ACCEPTED: {OrderStatus.PREPARING},
    OrderStatus.PREPARING: {OrderStatus.READY},
    OrderStatus.READY: {OrderStatus.ASSIGNED},
    OrderStatus.ASSIGNED: {OrderStatus.PICKED_UP},
    OrderStatus.PICKED_UP: {OrderStatus.DELIVERED},
    OrderStatus.REJECTED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.DELIVERED: set(),  # Terminal
}


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus
) -> bool:
    """Validate if order status transition is allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(
    current: OrderStatus
) -> Set[OrderStatus]:
    """Get all allowed transitions from current order status."""
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()
