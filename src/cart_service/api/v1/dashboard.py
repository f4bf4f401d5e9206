"""Merchant dashboard endpoints: analytics, live carts and the manual scan."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from cart_service.api.v1.deps import (
    get_aggregator,
    get_scanner,
    get_shop_settings_repository,
)
from cart_service.config import Settings, get_settings
from cart_service.infrastructure.database.repository import ShopSettingsRepository
from cart_service.services.abandonment import AbandonmentScanner
from cart_service.services.analytics import (
    AnalyticsAggregator,
    AnalyticsSummary,
    CartView,
)

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================


class ActiveCartsResponse(BaseModel):
    """Carts being edited right now."""

    carts: list[CartView]
    count: int


class ManualScanResponse(BaseModel):
    """Aggregate result of an operator-triggered abandonment scan."""

    success: bool
    abandoned: int
    notifications_sent: int


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/{shop}/analytics", response_model=AnalyticsSummary)
async def get_analytics(
    shop: str,
    days: Annotated[int | None, Query(description="Trailing window in days (default 30)")] = None,
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
) -> AnalyticsSummary:
    """
    Cart analytics for the dashboard.

    **Summary:** totals, average cart value, per-status counts and revenue,
    recovery rate and abandoned revenue over carts created in the window.

    **Daily chart:** built from the 50 most recent carts in the window, so it
    can under-count when the window holds more carts than that.

    A shop with no carts gets zeros and empty lists.
    """
    return await aggregator.analytics(shop, days)


@router.get("/{shop}/carts/active", response_model=ActiveCartsResponse)
async def get_active_carts(
    shop: str,
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
    settings: Settings = Depends(get_settings),
) -> ActiveCartsResponse:
    """Active carts updated in the last 5 minutes, newest first (max 100)."""
    carts = await aggregator.active_carts(
        shop,
        window_minutes=settings.active_cart_window_minutes,
        limit=settings.active_cart_limit,
    )
    return ActiveCartsResponse(
        carts=[CartView.from_record(cart) for cart in carts],
        count=len(carts),
    )


@router.post("/{shop}/abandonment-scan", response_model=ManualScanResponse)
async def trigger_abandonment_scan(
    shop: str,
    scanner: AbandonmentScanner = Depends(get_scanner),
    shop_settings: ShopSettingsRepository = Depends(get_shop_settings_repository),
) -> ManualScanResponse:
    """
    Run the abandonment scan for one shop now.

    Reports only aggregate counts; individual notification failures are
    logged, not returned.
    """
    settings = await shop_settings.get(shop)
    result = await scanner.scan(shop, settings)
    return ManualScanResponse(
        success=True,
        abandoned=result.abandoned_count,
        notifications_sent=result.notifications_sent,
    )
