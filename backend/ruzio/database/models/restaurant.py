"""
Restaurant and menu item models.

Restaurant and menu CRUD belongs to the catalog service; the order engine
reads them at pricing time only and snapshots what it needs onto the order.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ruzio.database.base import BaseModel


class Restaurant(BaseModel):
    """
    Restaurant profile owned by a restaurant-role user.

    Attributes:
        owner_id: Owning user, one restaurant per owner
        name: Restaurant name
        is_open: Whether the restaurant currently accepts orders
        is_approved: Admin approval status
        commission_percentage: Restaurant specific commission override;
            NULL means the platform default applies
    """

    __tablename__ = "restaurants"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    commission_percentage: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=5, scale=2),
        nullable=True,
        comment="Commission override; NULL falls back to the platform default",
    )

    __table_args__ = (
        CheckConstraint(
            "commission_percentage IS NULL OR "
            "(commission_percentage >= 0 AND commission_percentage <= 100)",
            name="ck_restaurants_commission_range",
        ),
        Index("ix_restaurants_open_approved", "is_open", "is_approved"),
    )


class MenuItem(BaseModel):
    """
    Menu item belonging to a restaurant.

    Attributes:
        restaurant_id: Owning restaurant
        name: Item name
        price: Current unit price
        is_available: Whether the item can be ordered right now
        is_active: False once the item is withdrawn from the menu
    """

    __tablename__ = "menu_items"

    restaurant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )

    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_menu_items_price_non_negative"),
        Index("ix_menu_items_restaurant_available", "restaurant_id", "is_available"),
    )
