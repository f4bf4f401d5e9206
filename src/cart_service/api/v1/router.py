"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from cart_service.api.v1 import (
    dashboard,
    health,
    shop_settings,
    webhooks,
)

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["Webhooks"],
)

api_router.include_router(
    dashboard.router,
    prefix="/shops",
    tags=["Dashboard"],
)

api_router.include_router(
    shop_settings.router,
    prefix="/shops",
    tags=["Settings"],
)
