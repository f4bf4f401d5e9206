"""Abandonment scanner: flags stale carts and sends recovery notifications.

Triggered externally (Celery beat or the dashboard's manual action). Safe to
run repeatedly and concurrently: the abandon write re-checks staleness, so a
cart updated after selection is left active, a cart already abandoned is
never counted twice, and a notification is claimed in the database before it
is sent.
"""

from datetime import datetime, timedelta
from typing import Callable

import structlog
from pydantic import BaseModel

from cart_service.domain import CartRecord, ShopSettings, utcnow
from cart_service.infrastructure.database.repository import CartRepository
from cart_service.infrastructure.redis import ScanLock
from cart_service.services.notifier import Notifier

logger = structlog.get_logger()


class ScanResult(BaseModel):
    """Aggregate outcome of one scan."""

    abandoned_count: int = 0
    notifications_sent: int = 0


class AbandonmentScanner:
    """Moves stale active carts to ``abandoned`` and notifies their customers."""

    def __init__(
        self,
        carts: CartRepository,
        notifier: Notifier,
        lock: ScanLock | None = None,
        clock: Callable[[], datetime] = utcnow,
        retry_window: timedelta = timedelta(hours=48),
    ):
        self.carts = carts
        self.notifier = notifier
        self.lock = lock or ScanLock(None)
        self.clock = clock
        self.retry_window = retry_window

    async def scan(self, shop: str, settings: ShopSettings | None = None) -> ScanResult:
        """
        Scan one shop.

        Args:
            shop: Shop identifier
            settings: The shop's settings; defaults (60 minute threshold,
                notifications off) when the shop has none

        Returns:
            ScanResult: carts newly abandoned and notifications delivered
        """
        settings = settings or ShopSettings(shop=shop)

        async with self.lock.hold(shop) as acquired:
            if not acquired:
                logger.info("Abandonment scan already running", shop=shop)
                return ScanResult()
            return await self._scan(shop, settings)

    async def _scan(self, shop: str, settings: ShopSettings) -> ScanResult:
        now = self.clock()
        cutoff = now - timedelta(minutes=settings.threshold_minutes)
        result = ScanResult()

        # Carts abandoned earlier whose notification has not gone out yet
        pending: list[CartRecord] = []
        if settings.email_enabled:
            pending = await self.carts.find_awaiting_notification(shop, now - self.retry_window)

        stale = await self.carts.find_stale(shop, cutoff)
        logger.info(
            "Scanning for abandoned carts",
            shop=shop,
            cutoff=cutoff.isoformat(),
            threshold_minutes=settings.threshold_minutes,
            stale=len(stale),
            pending_notifications=len(pending),
        )

        for cart in stale:
            if not await self.carts.mark_abandoned(cart.id, cutoff, now):
                # Touched by a concurrent update or another scan
                logger.debug("Cart no longer stale", shop=shop, cart_token=cart.cart_token)
                continue
            result.abandoned_count += 1
            cart.abandoned_at = now
            if settings.email_enabled and cart.customer_email and cart.email_sent_at is None:
                pending.append(cart)

        for cart in pending:
            if await self._notify(shop, cart, settings):
                result.notifications_sent += 1

        logger.info(
            "Abandonment scan complete",
            shop=shop,
            abandoned=result.abandoned_count,
            notifications_sent=result.notifications_sent,
        )
        return result

    async def _notify(self, shop: str, cart: CartRecord, settings: ShopSettings) -> bool:
        """
        Send one recovery notification at most once.

        The cart is claimed (``email_sent_at`` stamped while still abandoned)
        before sending, so overlapping scans cannot both send and a cart that
        was converted or reactivated meanwhile is skipped. A failed send
        releases the claim for the retry pass.
        """
        claimed_at = self.clock()
        if not await self.carts.claim_notification(cart.id, claimed_at):
            logger.debug(
                "Cart no longer awaiting notification",
                shop=shop,
                cart_token=cart.cart_token,
            )
            return False

        try:
            outcome = await self.notifier.send(shop, cart, settings)
        except Exception as e:
            # A misbehaving notifier must not abort the scan
            logger.error(
                "Recovery notification raised",
                shop=shop,
                cart_token=cart.cart_token,
                error=str(e),
                exc_info=True,
            )
            await self.carts.release_notification(cart.id, claimed_at)
            return False

        if not outcome.ok:
            logger.warning(
                "Recovery notification failed",
                shop=shop,
                cart_token=cart.cart_token,
                kind=outcome.failure.kind.value,
                reason=outcome.failure.reason,
            )
            await self.carts.release_notification(cart.id, claimed_at)
            return False

        return True
