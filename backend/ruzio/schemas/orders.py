"""
Order Pydantic schemas for API request/response validation.

This module defines the request bodies for placing, quoting, rejecting and
rating orders, and the response shapes for orders, their line snapshots and
status history, and price breakdowns.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ruzio.services.orders.enums import ActorRole, OrderStatus
from ruzio.services.pricing.pricing_engine import PriceBreakdown, RequestedLine


class OrderLineRequest(BaseModel):
    """One requested menu item."""

    model_config = ConfigDict(validate_assignment=True)

    menu_item_id: UUID = Field(..., description="Menu item to order")
    quantity: int = Field(..., ge=1, le=100, description="Quantity, at least 1")

    def to_requested_line(self) -> RequestedLine:
        return RequestedLine(menu_item_id=self.menu_item_id, quantity=self.quantity)


class OrderQuoteRequest(BaseModel):
    """Request for a price preview."""

    model_config = ConfigDict(validate_assignment=True)

    restaurant_id: UUID = Field(..., description="Restaurant to order from")
    items: list[OrderLineRequest] = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Requested items",
    )
    distance_km: Decimal = Field(
        ...,
        ge=Decimal("0.1"),
        max_digits=8,
        decimal_places=2,
        description="Delivery distance in kilometers",
    )

    @field_validator("items")
    @classmethod
    def validate_unique_items(cls, v: list[OrderLineRequest]) -> list[OrderLineRequest]:
        """Reject the same menu item listed twice."""
        ids = [line.menu_item_id for line in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Each menu item may appear only once")
        return v

    def requested_lines(self) -> list[RequestedLine]:
        return [line.to_requested_line() for line in self.items]


class OrderCreateRequest(OrderQuoteRequest):
    """Request to place an order."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    delivery_address: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Delivery address",
    )
    customer_note: Optional[str] = Field(
        None,
        max_length=200,
        description="Note for the restaurant",
    )


class OrderRejectRequest(BaseModel):
    """Restaurant rejection with an optional reason."""

    model_config = ConfigDict(str_strip_whitespace=True)

    reason: Optional[str] = Field(None, max_length=500, description="Rejection reason")


class OrderRatingRequest(BaseModel):
    """Customer rating of a delivered order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    review: Optional[str] = Field(None, max_length=500, description="Review text")


class OrderItemResponse(BaseModel):
    """Line snapshot taken at placement."""

    model_config = ConfigDict(from_attributes=True)

    menu_item_id: UUID
    name: str = Field(..., validation_alias="name_snapshot")
    unit_price: Decimal = Field(..., validation_alias="unit_price_snapshot")
    quantity: int
    line_subtotal: Decimal


class StatusHistoryResponse(BaseModel):
    """One status the order entered."""

    model_config = ConfigDict(from_attributes=True)

    status: OrderStatus
    entered_at: datetime
    actor_id: Optional[UUID] = None
    actor_role: Optional[ActorRole] = None


class OrderResponse(BaseModel):
    """Order with its frozen breakdown."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    display_number: str
    customer_id: UUID
    restaurant_id: UUID
    delivery_partner_id: Optional[UUID] = None
    status: OrderStatus
    delivery_address: str
    distance_km: Decimal
    items: list[OrderItemResponse]
    items_total: Decimal
    delivery_charge: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    commission_percentage_applied: Decimal
    admin_commission_amount: Decimal
    restaurant_earning_amount: Decimal
    rates_version: int
    customer_note: Optional[str] = None
    rejection_reason: Optional[str] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    status_history: list[StatusHistoryResponse]
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    """Page of orders."""

    items: list[OrderResponse]
    total: int
    skip: int
    limit: int


class PricedLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    menu_item_id: UUID
    name: str
    unit_price: Decimal
    quantity: int
    line_subtotal: Decimal


class PriceBreakdownResponse(BaseModel):
    """Price preview, identical to what placement would freeze."""

    model_config = ConfigDict(from_attributes=True)

    lines: list[PricedLineResponse]
    distance_km: Decimal
    items_total: Decimal
    base_delivery_charge: Decimal
    per_km_rate: Decimal
    delivery_charge: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    commission_percentage_applied: Decimal
    admin_commission_amount: Decimal
    restaurant_earning_amount: Decimal
    rates_version: int

    @classmethod
    def from_breakdown(cls, breakdown: PriceBreakdown) -> "PriceBreakdownResponse":
        return cls.model_validate(breakdown)
