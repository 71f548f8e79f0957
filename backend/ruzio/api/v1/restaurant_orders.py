"""
Restaurant order API endpoints.

Restaurant owners list the orders placed with their restaurant and move them
through acceptance and preparation.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from ruzio.api.deps import CurrentActor, OrderServiceDep, RestaurantActor
from ruzio.core.logging import get_logger
from ruzio.schemas.orders import OrderListResponse, OrderRejectRequest, OrderResponse
from ruzio.services.orders.enums import OrderStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/restaurant/orders", tags=["restaurant-orders"])


@router.get("/", response_model=OrderListResponse, summary="List restaurant orders")
async def list_restaurant_orders(
    actor: RestaurantActor,
    order_service: OrderServiceDep,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> OrderListResponse:
    """List the caller's restaurant orders, newest first."""
    orders, total = await order_service.list_restaurant_orders(
        actor.id, status=status_filter, skip=skip, limit=limit
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(order) for order in orders],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post("/{order_id}/accept", response_model=OrderResponse, summary="Accept order")
async def accept_order(
    order_id: UUID,
    actor: CurrentActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    order = await order_service.transition(
        order_id, actor.id, actor.role, OrderStatus.ACCEPTED
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/reject", response_model=OrderResponse, summary="Reject order")
async def reject_order(
    order_id: UUID,
    actor: CurrentActor,
    order_service: OrderServiceDep,
    body: Optional[OrderRejectRequest] = None,
) -> OrderResponse:
    """Reject a pending order, optionally with a reason shown to the customer."""
    order = await order_service.transition(
        order_id,
        actor.id,
        actor.role,
        OrderStatus.REJECTED,
        rejection_reason=body.reason if body else None,
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/preparing",
    response_model=OrderResponse,
    summary="Start preparing order",
)
async def start_preparing(
    order_id: UUID,
    actor: CurrentActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    order = await order_service.transition(
        order_id, actor.id, actor.role, OrderStatus.PREPARING
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/ready", response_model=OrderResponse, summary="Mark order ready")
async def mark_ready(
    order_id: UUID,
    actor: CurrentActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    """Mark a preparing order ready for pickup."""
    order = await order_service.transition(
        order_id, actor.id, actor.role, OrderStatus.READY
    )
    return OrderResponse.model_validate(order)
