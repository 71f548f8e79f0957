"""
Notification model for in-app notifications about orders.

Rows are written by the notification service after an order transition has
committed. Clients poll for unread notifications; there is no push channel.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ruzio.database.base import BaseModel


class NotificationKind(str, enum.Enum):
    """Notification categories shown to restaurants, customers and partners."""

    NEW_ORDER = "new_order"
    ORDER_UPDATE = "order_update"
    ORDER_ASSIGNED = "order_assigned"
    ORDER_READY = "order_ready"
    ORDER_CANCELLED = "order_cancelled"
    GENERAL = "general"


class Notification(BaseModel):
    """
    In-app notification addressed to one user.

    Attributes:
        user_id: Recipient
        kind: Notification category
        title: Short title
        message: Body text
        order_id: Related order, if any
        is_read: Set when the recipient opens the notification
    """

    __tablename__ = "notifications"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    kind: Mapped[NotificationKind] = mapped_column(
        SQLEnum(
            NotificationKind,
            name="notification_kind",
            values_callable=lambda kinds: [k.value for k in kinds],
            create_constraint=True,
        ),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    message: Mapped[str] = mapped_column(String(1000), nullable=False)

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
    )

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_notifications_user_read_created", "user_id", "is_read", "created_at"),
    )
