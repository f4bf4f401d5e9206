"""Cart abandonment scan tasks."""

import asyncio
from datetime import timedelta

import structlog
from celery import shared_task

from cart_service.config import get_settings
from cart_service.infrastructure.database.connection import get_async_session_factory
from cart_service.infrastructure.database.repository import (
    CartRepository,
    ShopSettingsRepository,
    SqlAlchemyCartRepository,
    SqlAlchemyShopSettingsRepository,
)
from cart_service.infrastructure.redis import ScanLock, close_redis, get_redis_client
from cart_service.services.abandonment import AbandonmentScanner
from cart_service.services.notifier import get_notifier

logger = structlog.get_logger()


async def scan_shops(
    carts: CartRepository,
    shop_settings: ShopSettingsRepository,
    scanner: AbandonmentScanner,
    shops: list[str] | None = None,
) -> dict:
    """
    Scan each shop in turn.

    A shop whose scan fails is logged and counted; the remaining shops are
    still scanned.
    """
    if shops is None:
        shops = await carts.shops_needing_scan()

    summary = {"shops": 0, "abandoned": 0, "notifications_sent": 0, "errors": 0}
    for shop in shops:
        try:
            settings = await shop_settings.get(shop)
            result = await scanner.scan(shop, settings)
        except Exception as e:
            logger.error("Abandonment scan failed", shop=shop, error=str(e), exc_info=True)
            summary["errors"] += 1
            continue
        summary["shops"] += 1
        summary["abandoned"] += result.abandoned_count
        summary["notifications_sent"] += result.notifications_sent

    return summary


async def _run_scan(shops: list[str] | None) -> dict:
    # Each task run owns its event loop, so it gets its own engine and Redis client
    settings = get_settings()
    session_factory = get_async_session_factory()
    carts = SqlAlchemyCartRepository(session_factory)
    scanner = AbandonmentScanner(
        carts,
        get_notifier(),
        lock=ScanLock(await get_redis_client(), ttl_seconds=settings.scan_lock_ttl_seconds),
        retry_window=timedelta(hours=settings.notification_retry_window_hours),
    )
    try:
        return await scan_shops(
            carts,
            SqlAlchemyShopSettingsRepository(session_factory),
            scanner,
            shops,
        )
    finally:
        await close_redis()
        await session_factory.kw["bind"].dispose()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def scan_abandoned_carts(self) -> dict:
    """
    Scan every shop with active or pending-notification carts.

    Returns:
        dict: Shops scanned, carts abandoned, notifications sent, failed shops
    """
    logger.info("Checking for abandoned carts")
    summary = asyncio.run(_run_scan(None))
    logger.info("Abandoned cart check complete", **summary)
    return summary


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def scan_shop(self, shop: str) -> dict:
    """
    Scan a single shop.

    Args:
        shop: The shop to scan

    Returns:
        dict: Scan summary for the shop
    """
    logger.info("Checking for abandoned carts", shop=shop)
    return asyncio.run(_run_scan([shop]))
