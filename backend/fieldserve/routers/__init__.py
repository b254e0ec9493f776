"""API routers."""

from fieldserve.routers.admin import router as admin_router
from fieldserve.routers.customers import router as customers_router
from fieldserve.routers.health import router as health_router
from fieldserve.routers.requests import router as requests_router
from fieldserve.routers.workers import router as workers_router

__all__ = [
    "admin_router",
    "customers_router",
    "health_router",
    "requests_router",
    "workers_router",
]
