"""Dashboard analytics over a shop's cart history.

Everything is recomputed from the repository on each request; nothing is
materialised.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

import structlog
from pydantic import BaseModel, Field

from cart_service.domain import (
    CartRecord,
    CartStatus,
    StatusTotals,
    round_half_up,
    round_money,
    utcnow,
)
from cart_service.infrastructure.database.repository import CartRepository
from shared.constants import (
    ACTIVE_CART_LIMIT,
    ACTIVE_CART_WINDOW_MINUTES,
    DAILY_SERIES_SAMPLE_SIZE,
    DEFAULT_ANALYTICS_WINDOW_DAYS,
)

logger = structlog.get_logger()


# =============================================================================
# Response Models
# =============================================================================


class StatusBreakdown(BaseModel):
    """Carts currently in one status."""

    status: CartStatus
    count: int
    revenue: float


class DailyBucket(BaseModel):
    """One calendar day (UTC) of the daily chart."""

    date: str
    cart_count: int = 0
    abandoned_count: int = 0
    revenue: float = 0.0


class LineItemView(BaseModel):
    title: str
    variant_title: str | None = None
    quantity: int
    price: float


class CartView(BaseModel):
    """Cart as shown on the dashboard."""

    cart_token: str
    status: CartStatus
    customer_email: str | None = None
    total_price: float
    currency: str
    line_items: list[LineItemView] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    abandoned_at: datetime | None = None
    email_sent_at: datetime | None = None

    @classmethod
    def from_record(cls, cart: CartRecord) -> "CartView":
        return cls(
            cart_token=cart.cart_token,
            status=cart.status,
            customer_email=cart.customer_email,
            total_price=float(round_money(cart.total_price)),
            currency=cart.currency,
            line_items=[
                LineItemView(
                    title=item.title,
                    variant_title=item.variant_title,
                    quantity=item.quantity,
                    price=float(round_money(item.price)),
                )
                for item in cart.line_items
            ],
            created_at=cart.created_at,
            updated_at=cart.updated_at,
            abandoned_at=cart.abandoned_at,
            email_sent_at=cart.email_sent_at,
        )


class AnalyticsSummary(BaseModel):
    """KPIs for a shop over a trailing window.

    ``daily`` is built from the most recent carts only (see
    ``AnalyticsAggregator.series_sample_size``) and can disagree with the
    totals when the window holds more carts than that.
    """

    window_days: int
    total_carts: int = 0
    total_revenue: float = 0.0
    avg_cart_value: float = 0.0
    active_count: int = 0
    abandoned_count: int = 0
    recovered_count: int = 0
    converted_count: int = 0
    recovery_rate: int = 0
    abandoned_revenue: float = 0.0
    by_status: list[StatusBreakdown] = Field(default_factory=list)
    daily: list[DailyBucket] = Field(default_factory=list)
    recent_carts: list[CartView] = Field(default_factory=list)


# =============================================================================
# Aggregation
# =============================================================================


def recovery_rate(recovered: int, abandoned: int) -> int:
    """Recovered carts as a whole percentage of abandoned ones; 0 with none abandoned."""
    if abandoned <= 0:
        return 0
    return round_half_up(Decimal(recovered) * 100 / Decimal(abandoned))


def build_daily_series(carts: list[CartRecord]) -> list[DailyBucket]:
    """Group carts by UTC calendar day of creation, oldest day first."""
    buckets: dict[str, dict] = {}
    for cart in carts:
        day = cart.created_at.astimezone(timezone.utc).date().isoformat()
        bucket = buckets.setdefault(
            day, {"cart_count": 0, "abandoned_count": 0, "revenue": Decimal("0")}
        )
        bucket["cart_count"] += 1
        if cart.status == CartStatus.ABANDONED:
            bucket["abandoned_count"] += 1
        bucket["revenue"] += cart.total_price

    return [
        DailyBucket(
            date=day,
            cart_count=b["cart_count"],
            abandoned_count=b["abandoned_count"],
            revenue=float(round_money(b["revenue"])),
        )
        for day, b in sorted(buckets.items())
    ]


class AnalyticsAggregator:
    """Summary statistics and live-cart listing for the merchant dashboard."""

    def __init__(
        self,
        carts: CartRepository,
        clock: Callable[[], datetime] = utcnow,
        series_sample_size: int = DAILY_SERIES_SAMPLE_SIZE,
        default_window_days: int = DEFAULT_ANALYTICS_WINDOW_DAYS,
    ):
        self.carts = carts
        self.clock = clock
        self.series_sample_size = series_sample_size
        self.default_window_days = default_window_days

    def _window(self, window_days: int | None) -> int:
        if not window_days or window_days <= 0:
            return self.default_window_days
        return window_days

    async def analytics(self, shop: str, window_days: int | None = None) -> AnalyticsSummary:
        """
        Compute the dashboard summary for carts created in the last ``window_days``.

        A missing or non-positive window falls back to the default (30 days).
        """
        days = self._window(window_days)
        since = self.clock() - timedelta(days=days)

        totals = await self.carts.status_totals(shop, since)
        recent = await self.carts.recent(shop, since, self.series_sample_size)

        by_status: dict[CartStatus, StatusTotals] = {t.status: t for t in totals}

        def count(status: CartStatus) -> int:
            return by_status[status].count if status in by_status else 0

        def revenue(status: CartStatus) -> Decimal:
            return by_status[status].revenue if status in by_status else Decimal("0")

        total_carts = sum(t.count for t in totals)
        total_revenue = sum((t.revenue for t in totals), Decimal("0"))
        avg_cart_value = total_revenue / total_carts if total_carts else Decimal("0")

        abandoned = count(CartStatus.ABANDONED)
        recovered = count(CartStatus.RECOVERED)

        summary = AnalyticsSummary(
            window_days=days,
            total_carts=total_carts,
            total_revenue=float(round_money(total_revenue)),
            avg_cart_value=float(round_money(avg_cart_value)),
            active_count=count(CartStatus.ACTIVE),
            abandoned_count=abandoned,
            recovered_count=recovered,
            converted_count=count(CartStatus.CONVERTED),
            recovery_rate=recovery_rate(recovered, abandoned),
            abandoned_revenue=float(round_money(revenue(CartStatus.ABANDONED))),
            by_status=[
                StatusBreakdown(
                    status=status,
                    count=count(status),
                    revenue=float(round_money(revenue(status))),
                )
                for status in CartStatus
            ],
            daily=build_daily_series(recent),
            recent_carts=[CartView.from_record(cart) for cart in recent],
        )

        logger.debug(
            "Analytics computed",
            shop=shop,
            window_days=days,
            total_carts=total_carts,
        )
        return summary

    async def active_carts(
        self,
        shop: str,
        window_minutes: int = ACTIVE_CART_WINDOW_MINUTES,
        limit: int = ACTIVE_CART_LIMIT,
    ) -> list[CartRecord]:
        """Active carts touched in the last few minutes, newest first."""
        since = self.clock() - timedelta(minutes=window_minutes)
        return await self.carts.list_active(shop, since, limit)
