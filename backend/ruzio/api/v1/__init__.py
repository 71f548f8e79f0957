"""
API v1 package initialization.

This module collects the v1 routers of the Ruzio order engine.
"""

from ruzio.api.v1.delivery import router as delivery_router
from ruzio.api.v1.notifications import router as notifications_router
from ruzio.api.v1.orders import router as orders_router
from ruzio.api.v1.restaurant_orders import router as restaurant_orders_router
from ruzio.api.v1.settlement import router as settlement_router

__all__ = [
    "delivery_router",
    "notifications_router",
    "orders_router",
    "restaurant_orders_router",
    "settlement_router",
]
