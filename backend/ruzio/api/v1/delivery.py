"""
Delivery partner API endpoints.

Partners browse READY orders, take one at a time, and report pickup and
delivery. Taking an order is race-safe: when several partners accept the
same order, one gets it and the rest receive a 409.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request

from ruzio.api.deps import ArbiterDep, CurrentActor, DeliveryActor, OrderServiceDep
from ruzio.core.logging import get_logger
from ruzio.core.rate_limit import limiter, write_rate_limit
from ruzio.schemas.orders import OrderResponse
from ruzio.services.orders.enums import OrderStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/delivery", tags=["delivery"])


@router.get(
    "/available",
    response_model=list[OrderResponse],
    summary="List orders waiting for a partner",
)
async def list_available(
    actor: DeliveryActor,
    arbiter: ArbiterDep,
    limit: int = Query(20, ge=1, le=100),
) -> list[OrderResponse]:
    """READY unassigned orders, the ones ready longest first."""
    orders = await arbiter.list_available(limit=limit)
    return [OrderResponse.model_validate(order) for order in orders]


@router.post(
    "/orders/{order_id}/accept",
    response_model=OrderResponse,
    summary="Take an order",
)
@limiter.limit(write_rate_limit)
async def accept_delivery(
    request: Request,
    order_id: UUID,
    actor: CurrentActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    """Assign a READY order to the calling partner."""
    order = await order_service.transition(
        order_id, actor.id, actor.role, OrderStatus.ASSIGNED
    )
    return OrderResponse.model_validate(order)


@router.get(
    "/active",
    response_model=Optional[OrderResponse],
    summary="Current delivery",
)
async def get_active_delivery(
    actor: DeliveryActor,
    arbiter: ArbiterDep,
) -> Optional[OrderResponse]:
    """The caller's order in ASSIGNED or PICKED_UP, or null."""
    order = await arbiter.get_active_delivery(actor.id)
    return OrderResponse.model_validate(order) if order else None


@router.get(
    "/history",
    response_model=list[OrderResponse],
    summary="Delivered orders",
)
async def get_delivery_history(
    actor: DeliveryActor,
    arbiter: ArbiterDep,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
) -> list[OrderResponse]:
    orders = await arbiter.get_delivery_history(actor.id, skip=skip, limit=limit)
    return [OrderResponse.model_validate(order) for order in orders]


@router.post(
    "/orders/{order_id}/picked-up",
    response_model=OrderResponse,
    summary="Confirm pickup",
)
async def confirm_pickup(
    order_id: UUID,
    actor: CurrentActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    order = await order_service.transition(
        order_id, actor.id, actor.role, OrderStatus.PICKED_UP
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/orders/{order_id}/delivered",
    response_model=OrderResponse,
    summary="Confirm delivery",
)
async def confirm_delivery(
    order_id: UUID,
    actor: CurrentActor,
    order_service: OrderServiceDep,
) -> OrderResponse:
    order = await order_service.transition(
        order_id, actor.id, actor.role, OrderStatus.DELIVERED
    )
    return OrderResponse.model_validate(order)
