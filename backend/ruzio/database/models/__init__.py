"""
ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from ruzio.database.base import Base
from ruzio.database.models.notification import Notification, NotificationKind
from ruzio.database.models.order import (
    Order,
    OrderItem,
    OrderSequence,
    OrderStatusHistory,
)
from ruzio.database.models.platform_settings import PlatformSettings
from ruzio.database.models.restaurant import MenuItem, Restaurant
from ruzio.database.models.user import User

__all__ = [
    "Base",
    "MenuItem",
    "Notification",
    "NotificationKind",
    "Order",
    "OrderItem",
    "OrderSequence",
    "OrderStatusHistory",
    "PlatformSettings",
    "Restaurant",
    "User",
]
