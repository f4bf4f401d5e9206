"""FastAPI dependency providers for repositories and services."""

from datetime import datetime, timedelta
from typing import Callable

from fastapi import Depends

from cart_service.config import Settings, get_settings
from cart_service.domain import utcnow
from cart_service.infrastructure.database.repository import (
    CartRepository,
    ShopSettingsRepository,
    SqlAlchemyCartRepository,
    SqlAlchemyShopSettingsRepository,
)
from cart_service.infrastructure.redis import ScanLock, get_redis_client
from cart_service.services.abandonment import AbandonmentScanner
from cart_service.services.analytics import AnalyticsAggregator
from cart_service.services.lifecycle import CartLifecycleManager
from cart_service.services.notifier import Notifier, get_notifier


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_cart_repository() -> CartRepository:
    return SqlAlchemyCartRepository()


def get_shop_settings_repository() -> ShopSettingsRepository:
    return SqlAlchemyShopSettingsRepository()


async def get_scan_lock(settings: Settings = Depends(get_settings)) -> ScanLock:
    client = await get_redis_client()
    return ScanLock(client, ttl_seconds=settings.scan_lock_ttl_seconds)


def get_lifecycle_manager(
    carts: CartRepository = Depends(get_cart_repository),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> CartLifecycleManager:
    return CartLifecycleManager(carts, clock=clock)


def get_scanner(
    carts: CartRepository = Depends(get_cart_repository),
    notifier: Notifier = Depends(get_notifier),
    lock: ScanLock = Depends(get_scan_lock),
    clock: Callable[[], datetime] = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> AbandonmentScanner:
    return AbandonmentScanner(
        carts,
        notifier,
        lock=lock,
        clock=clock,
        retry_window=timedelta(hours=settings.notification_retry_window_hours),
    )


def get_aggregator(
    carts: CartRepository = Depends(get_cart_repository),
    clock: Callable[[], datetime] = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> AnalyticsAggregator:
    return AnalyticsAggregator(
        carts,
        clock=clock,
        series_sample_size=settings.daily_series_sample_size,
        default_window_days=settings.default_analytics_window_days,
    )
