"""
API v1 package initialization.

This module collects the v1 routers of the marketplace orders API.
"""

from marketplace.api.v1.line_items import router as line_items_router
from marketplace.api.v1.orders import router as orders_router
from marketplace.api.v1.payments import router as payments_router

__all__ = ["line_items_router", "orders_router", "payments_router"]
