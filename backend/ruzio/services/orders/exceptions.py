"""
Order engine error taxonomy.

Every error carries a stable machine-readable ``kind``, the HTTP status the
API layer answers with, a human message and free-form logging context. All
of them are terminal for the requested operation: nothing is retried and no
state is mutated when one is raised.
"""

from typing import Any


class OrderServiceError(Exception):
    """Base exception for order engine errors."""

    kind = "order_error"
    status_code = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, str]:
        """Serializable error body."""
        return {"kind": self.kind, "message": self.message}


class OrderValidationError(OrderServiceError):
    """Raised when request input is malformed."""

    kind = "validation_error"
    status_code = 400


class OrderNotFoundError(OrderServiceError):
    """Raised when an order is absent or outside the actor's scope.

    The two cases are deliberately indistinguishable.
    """

    kind = "not_found"
    status_code = 404


class UnauthorizedActorError(OrderServiceError):
    """Raised when the actor may not perform the requested transition."""

    kind = "unauthorized"
    status_code = 403


class InvalidTransitionError(OrderServiceError):
    """Raised when the order is not in the source status of the transition."""

    kind = "invalid_transition"
    status_code = 409


class OrderConflictError(OrderServiceError):
    """Raised when a conditional write lost against a concurrent writer.

    Expected under normal concurrent load, not a programming error.
    """

    kind = "conflict"
    status_code = 409


class AlreadyAssignedError(OrderConflictError):
    """Raised when another delivery partner already took the order."""

    kind = "already_assigned"


class PartnerBusyError(OrderConflictError):
    """Raised when the delivery partner already has an active delivery."""

    kind = "partner_busy"


class AlreadyRatedError(OrderConflictError):
    """Raised when the order already carries a rating."""

    kind = "already_rated"


class UpstreamUnavailableError(OrderServiceError):
    """Raised when a collaborator (database, menu lookup) fails transiently."""

    kind = "upstream_unavailable"
    status_code = 503


class PricingError(OrderServiceError):
    """Base exception for order pricing failures."""

    kind = "pricing_error"
    status_code = 422


class EmptyOrderError(PricingError, OrderValidationError):
    """Raised when an order has no lines."""

    kind = "empty_order"
    status_code = 400


class ItemUnavailableError(PricingError, OrderValidationError):
    """Raised when a line's item is missing, unavailable or from another restaurant."""

    kind = "item_unavailable"
    status_code = 400


class RestaurantUnavailableError(PricingError):
    """Raised when the restaurant is absent, closed or not approved."""

    kind = "restaurant_unavailable"
    status_code = 422
