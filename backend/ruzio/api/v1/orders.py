"""
Customer order API endpoints.

Customers place, preview, list, cancel and rate their orders here; any actor
may read an order within its own scope. Domain errors propagate to the
application's OrderServiceError handler, which maps them to HTTP statuses.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from ruzio.api.deps import CurrentActor, CustomerActor, OrderServiceDep
from ruzio.core.logging import get_logger
from ruzio.core.rate_limit import limiter, write_rate_limit
from ruzio.schemas.orders import (
    OrderCreateRequest,
    OrderListResponse,
    OrderQuoteRequest,
    OrderRatingRequest,
    OrderResponse,
    PriceBreakdownResponse,
)
from ruzio.services.orders.enums import ActorRole, OrderStatus
from ruzio.services.orders.exceptions import UnauthorizedActorError

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "/",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description="Price the requested items and place a pending order",
)
@limiter.limit(write_rate_limit)
async def place_order(
    request: Request,
    body: OrderCreateRequest,
    actor: CustomerActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    """
    Place an order for the calling customer.

    The breakdown in the response is frozen: later menu or rate changes do
    not alter it.
    """
    logger.info(
        "Placing order",
        customer_id=str(actor.id),
        restaurant_id=str(body.restaurant_id),
        item_count=len(body.items),
    )

    order = await order_service.place_order(
        customer_id=actor.id,
        restaurant_id=body.restaurant_id,
        lines=body.requested_lines(),
        delivery_address=body.delivery_address,
        distance_km=body.distance_km,
        customer_note=body.customer_note,
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/quote",
    response_model=PriceBreakdownResponse,
    summary="Preview order price",
)
async def quote_order(
    body: OrderQuoteRequest,
    actor: CustomerActor,
    order_service: OrderServiceDep,
) -> PriceBreakdownResponse:
    """Price the requested items without placing an order."""
    breakdown = await order_service.quote_order(
        restaurant_id=body.restaurant_id,
        lines=body.requested_lines(),
        distance_km=body.distance_km,
    )
    return PriceBreakdownResponse.from_breakdown(breakdown)


@router.get(
    "/",
    response_model=OrderListResponse,
    summary="List orders",
    description="Customers see their own orders, admins see every order",
)
async def list_orders(
    actor: CurrentActor,
    order_service: OrderServiceDep,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> OrderListResponse:
    """List orders, newest first."""
    if actor.role == ActorRole.CUSTOMER:
        orders, total = await order_service.list_customer_orders(
            actor.id, status=status_filter, skip=skip, limit=limit
        )
    elif actor.role == ActorRole.ADMIN:
        orders, total = await order_service.list_orders(
            status=status_filter, skip=skip, limit=limit
        )
    else:
        raise UnauthorizedActorError(
            "Only customers and admins can list orders",
            actor_role=actor.role.value,
        )

    return OrderListResponse(
        items=[OrderResponse.model_validate(order) for order in orders],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
async def get_order(
    order_id: UUID,
    actor: CurrentActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    """Get an order visible to the caller."""
    order = await order_service.get_order(order_id, actor.id, actor.role)
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel order",
    description="Cancel a pending order; only the customer who placed it can",
)
async def cancel_order(
    order_id: UUID,
    actor: CurrentActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    """Cancel a pending order."""
    order = await order_service.transition(
        order_id, actor.id, actor.role, OrderStatus.CANCELLED
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/rate",
    response_model=OrderResponse,
    summary="Rate order",
)
async def rate_order(
    order_id: UUID,
    body: OrderRatingRequest,
    actor: CustomerActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    """Rate a delivered order once."""
    order = await order_service.rate_order(
        order_id, actor.id, body.rating, body.review
    )
    return OrderResponse.model_validate(order)
