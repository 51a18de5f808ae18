"""
API v1 package initialization.

This module collects the v1 routers of the CleanWash API.
"""

from cleanwash.api.v1.catalog import router as catalog_router
from cleanwash.api.v1.live import router as live_router
from cleanwash.api.v1.orders import router as orders_router

__all__ = ["catalog_router", "live_router", "orders_router"]
