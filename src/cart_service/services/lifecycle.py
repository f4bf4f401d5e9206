"""Cart lifecycle manager: applies webhook events to cart state."""

from datetime import datetime
from typing import Callable

import structlog

from cart_service.domain import (
    CartRecord,
    LifecycleEvent,
    next_status,
    utcnow,
)
from cart_service.exceptions import CartTrackerError
from cart_service.infrastructure.database.repository import CartRepository
from cart_service.schemas import CartPayload

logger = structlog.get_logger()


class CartLifecycleManager:
    """Idempotent create-or-update of carts and the order-placed transition."""

    def __init__(self, carts: CartRepository, clock: Callable[[], datetime] = utcnow):
        self.carts = carts
        self.clock = clock

    async def upsert(self, shop: str, payload: CartPayload) -> CartRecord:
        """
        Apply a cart/checkout snapshot.

        A new token creates an ``active`` cart. A known token has its mutable
        fields overwritten (last write wins) and returns to ``active``, unless
        it is already ``converted``. The converted guard lives in the update
        statement itself, so a racing order cannot be undone.

        A snapshot without ``updated_at`` is stamped with the receive time, so
        replaying it moves ``updated_at`` forward and restarts the abandonment
        clock. Everything else is unchanged by the replay.
        """
        now = self.clock()
        changes = payload.to_changes(received_at=now)

        existing = await self.carts.get(shop, payload.token)
        if existing is None:
            created_at = payload.created_at or now
            record = CartRecord(
                shop=shop,
                cart_token=payload.token,
                customer_id=changes.customer_id,
                customer_email=changes.customer_email,
                total_price=changes.total_price,
                currency=changes.currency,
                line_items=changes.line_items,
                status=next_status(None, LifecycleEvent.CREATE),
                created_at=created_at,
                updated_at=changes.updated_at,
            )
            created = await self.carts.create(record)
            if created is not None:
                logger.info("Cart created", shop=shop, cart_token=payload.token)
                return created
            # Lost a creation race; the row exists now
            logger.debug("Cart created concurrently, updating", shop=shop, cart_token=payload.token)

        updated = await self.carts.apply_update(shop, payload.token, changes)
        if updated is None:
            raise CartTrackerError(f"Cart {payload.token} disappeared during update")
        if existing is not None and existing.status != updated.status:
            logger.info(
                "Cart status changed",
                shop=shop,
                cart_token=payload.token,
                from_status=existing.status.value,
                to_status=updated.status.value,
            )
        return updated

    async def mark_converted(self, shop: str, cart_token: str) -> int:
        """
        Move a cart to ``converted`` after an order.

        Returns the number of affected carts: 0 when the cart is unknown
        (orders can arrive before any cart event) or already converted.
        """
        affected = await self.carts.mark_converted(shop, cart_token)
        if affected:
            logger.info("Cart converted", shop=shop, cart_token=cart_token)
        else:
            logger.info(
                "Order for unknown or already converted cart",
                shop=shop,
                cart_token=cart_token,
            )
        return affected
