"""
Order aggregate models.

The order row carries the financial breakdown frozen at placement, the
current status and the actor assignments. Line items snapshot the menu at
placement time and status history is an append-only log with one row per
status entered. Only the order state machine changes status; nothing changes
the financial columns once the row is persisted.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
    func,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from ruzio.database.base import Base, BaseModel
from ruzio.services.orders.enums import ActorRole, OrderStatus


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


ORDER_STATUS_TYPE = SQLEnum(
    OrderStatus,
    name="order_status",
    values_callable=_enum_values,
    create_constraint=True,
)

_PARTNER_HELD_SQL = "('assigned', 'picked_up', 'delivered')"

# Columns that are written once at placement and never again
FROZEN_ORDER_FIELDS = (
    "display_number",
    "customer_id",
    "restaurant_id",
    "items_total",
    "delivery_charge",
    "platform_fee",
    "total_amount",
    "commission_percentage_applied",
    "admin_commission_amount",
    "restaurant_earning_amount",
    "rates_version",
)


class Order(BaseModel):
    """
    Order aggregate root.

    Attributes:
        display_number: Human-readable order number (e.g. RUZ000042)
        customer_id: Customer who placed the order
        restaurant_id: Restaurant preparing the order
        delivery_partner_id: Assigned delivery partner, NULL until assignment
        status: Current lifecycle status
        delivery_address: Free-text delivery address
        distance_km: Delivery distance used for the delivery charge
        items_total: Sum of line subtotals
        delivery_charge: Base charge plus distance charge
        platform_fee: Platform fee charged to the customer
        total_amount: items_total + delivery_charge + platform_fee
        commission_percentage_applied: Commission rate resolved at placement
        admin_commission_amount: Platform share of items_total
        restaurant_earning_amount: items_total - admin_commission_amount
        rates_version: Version of the platform rates used for pricing
        customer_note: Optional note from the customer
        rejection_reason: Optional reason given by the restaurant
        rating: Customer rating 1-5, only once the order is delivered
        review: Optional review text accompanying the rating
        reviewed_at: When the rating was recorded
    """

    __tablename__ = "orders"

    display_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
        comment="Human-readable order number",
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    restaurant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("restaurants.id", ondelete="RESTRICT"),
        nullable=False,
    )

    delivery_partner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
    )

    status: Mapped[OrderStatus] = mapped_column(
        ORDER_STATUS_TYPE,
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )

    delivery_address: Mapped[str] = mapped_column(String(500), nullable=False)

    distance_km: Mapped[Decimal] = mapped_column(
        Numeric(precision=8, scale=2), nullable=False
    )

    # Financial breakdown, frozen at placement
    items_total: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )
    delivery_charge: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )
    platform_fee: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )
    commission_percentage_applied: Mapped[Decimal] = mapped_column(
        Numeric(precision=5, scale=2), nullable=False
    )
    admin_commission_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )
    restaurant_earning_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )
    rates_version: Mapped[int] = mapped_column(Integer, nullable=False)

    customer_note: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    rejection_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    review: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )

    status_history: Mapped[list["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        lazy="selectin",
        order_by="OrderStatusHistory.sequence",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="ck_orders_rating_range",
        ),
        CheckConstraint(
            "rating IS NULL OR status = 'delivered'",
            name="ck_orders_rating_after_delivery",
        ),
        CheckConstraint(
            "review IS NULL OR rating IS NOT NULL",
            name="ck_orders_review_requires_rating",
        ),
        CheckConstraint(
            f"(status IN {_PARTNER_HELD_SQL} AND delivery_partner_id IS NOT NULL) OR "
            f"(status NOT IN {_PARTNER_HELD_SQL} AND delivery_partner_id IS NULL)",
            name="ck_orders_partner_matches_status",
        ),
        Index("ix_orders_customer_created", "customer_id", "created_at"),
        Index("ix_orders_restaurant_status", "restaurant_id", "status"),
        Index("ix_orders_partner_status", "delivery_partner_id", "status"),
        # One active delivery per partner, enforced by the database as well
        Index(
            "uq_orders_partner_active_delivery",
            "delivery_partner_id",
            unique=True,
            sqlite_where=text("status IN ('assigned', 'picked_up')"),
            postgresql_where=text("status IN ('assigned', 'picked_up')"),
        ),
    )

    @validates(*FROZEN_ORDER_FIELDS)
    def _guard_frozen_fields(self, key: str, value):
        state = inspect(self)
        if state.persistent or state.detached:
            raise ValueError(f"Order.{key} is frozen once the order is placed")
        return value

    @property
    def status_timestamps(self) -> dict[OrderStatus, datetime]:
        """Instant each status was entered, in the order they were entered."""
        return {entry.status: entry.entered_at for entry in self.status_history}

    @property
    def is_rated(self) -> bool:
        return self.rating is not None


class OrderItem(Base):
    """
    Line item snapshot taken at placement.

    ``menu_item_id`` is kept for reference only; it is deliberately not a
    foreign key so later menu edits or deletions never touch placed orders.
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        primary_key=True,
    )

    position: Mapped[int] = mapped_column(Integer, primary_key=True)

    menu_item_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)

    name_snapshot: Mapped[str] = mapped_column(String(100), nullable=False)

    unit_price_snapshot: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    line_subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2), nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
    )


class OrderStatusHistory(Base):
    """
    Append-only status log: one row per status an order has entered.

    The unique (order_id, status) constraint makes re-entering a status
    impossible at the storage level.
    """

    __tablename__ = "order_status_history"

    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    status: Mapped[OrderStatus] = mapped_column(ORDER_STATUS_TYPE, nullable=False)

    entered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )

    actor_role: Mapped[Optional[ActorRole]] = mapped_column(
        SQLEnum(
            ActorRole,
            name="actor_role",
            values_callable=_enum_values,
            create_constraint=False,
        ),
        nullable=True,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    __table_args__ = (
        UniqueConstraint("order_id", "status", name="uq_order_status_history_entry"),
        Index("ix_order_status_history_status_entered", "status", "entered_at"),
    )


class OrderSequence(Base):
    """Named counter backing human-readable order numbers."""

    __tablename__ = "order_sequences"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)

    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
