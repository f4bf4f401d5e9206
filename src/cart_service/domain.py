"""Cart domain types and the lifecycle state machine.

A cart moves ``active -> abandoned -> recovered | converted`` and may jump
from any non-converted state straight to ``converted`` when an order is
placed. ``converted`` is terminal.

Nothing in this service writes ``recovered``: it is reserved for an external
recovery-confirmation mechanism.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from cart_service.exceptions import UnknownStatusError
from shared.constants import (
    DEFAULT_ABANDONED_THRESHOLD_MIN,
    DEFAULT_CURRENCY,
    DEFAULT_EMAIL_SUBJECT,
    DEFAULT_SMTP_PORT,
)

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return Decimal("0")
    return Decimal(str(value))


def round_money(value: Any) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# Lifecycle
# =============================================================================


class CartStatus(str, Enum):
    """Lifecycle status of a tracked cart."""

    ACTIVE = "active"
    ABANDONED = "abandoned"
    RECOVERED = "recovered"
    CONVERTED = "converted"

    @classmethod
    def parse(cls, value: "CartStatus | str") -> "CartStatus":
        """Parse a stored or submitted status, accepting enum values or names."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise UnknownStatusError(value)


class LifecycleEvent(str, Enum):
    """Signals that can move a cart between states."""

    CREATE = "create"
    UPDATE = "update"
    ORDER_PLACED = "order_placed"
    STALENESS_TIMEOUT = "staleness_timeout"


_TRANSITIONS: dict[tuple[CartStatus | None, LifecycleEvent], CartStatus] = {
    (None, LifecycleEvent.CREATE): CartStatus.ACTIVE,
    # An update always means the cart is live again
    (CartStatus.ACTIVE, LifecycleEvent.UPDATE): CartStatus.ACTIVE,
    (CartStatus.ABANDONED, LifecycleEvent.UPDATE): CartStatus.ACTIVE,
    (CartStatus.RECOVERED, LifecycleEvent.UPDATE): CartStatus.ACTIVE,
    (CartStatus.ACTIVE, LifecycleEvent.ORDER_PLACED): CartStatus.CONVERTED,
    (CartStatus.ABANDONED, LifecycleEvent.ORDER_PLACED): CartStatus.CONVERTED,
    (CartStatus.RECOVERED, LifecycleEvent.ORDER_PLACED): CartStatus.CONVERTED,
    (CartStatus.ACTIVE, LifecycleEvent.STALENESS_TIMEOUT): CartStatus.ABANDONED,
}


def can_transition(current: CartStatus | None, event: LifecycleEvent) -> bool:
    return (current, event) in _TRANSITIONS


def next_status(current: CartStatus | None, event: LifecycleEvent) -> CartStatus | None:
    """Status after ``event``; transitions outside the table leave ``current`` unchanged."""
    return _TRANSITIONS.get((current, event), current)


# =============================================================================
# Records
# =============================================================================


@dataclass
class LineItem:
    """A single product line in a cart."""

    title: str
    quantity: int = 1
    price: Decimal = Decimal("0")
    variant_title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "variant_title": self.variant_title,
            "quantity": self.quantity,
            "price": str(self.price),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineItem":
        return cls(
            title=data.get("title") or "",
            variant_title=data.get("variant_title"),
            quantity=int(data.get("quantity") or 1),
            price=to_decimal(data.get("price")),
        )


@dataclass
class CartRecord:
    """One tracked cart, unique per ``(shop, cart_token)``."""

    shop: str
    cart_token: str
    total_price: Decimal = Decimal("0")
    currency: str = DEFAULT_CURRENCY
    status: CartStatus = CartStatus.ACTIVE
    customer_id: str | None = None
    customer_email: str | None = None
    line_items: list[LineItem] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    abandoned_at: datetime | None = None
    email_sent_at: datetime | None = None
    id: int | None = None

    def is_stale(self, cutoff: datetime) -> bool:
        """Eligible for the staleness timeout at ``cutoff``."""
        return (
            self.status == CartStatus.ACTIVE
            and self.updated_at < cutoff
            and self.total_price > 0
        )

    def awaits_notification(self) -> bool:
        return (
            self.status == CartStatus.ABANDONED
            and self.customer_email is not None
            and self.email_sent_at is None
        )


@dataclass
class CartChanges:
    """Mutable cart fields carried by a create/update event."""

    total_price: Decimal
    currency: str
    line_items: list[LineItem]
    updated_at: datetime
    customer_id: str | None = None
    customer_email: str | None = None


@dataclass
class StatusTotals:
    """Count and revenue of the carts currently in one status."""

    status: CartStatus
    count: int
    revenue: Decimal


@dataclass
class ShopSettings:
    """Per-shop recovery configuration, passed explicitly to the scanner and notifier."""

    shop: str
    abandoned_threshold_min: int | None = DEFAULT_ABANDONED_THRESHOLD_MIN
    email_enabled: bool = False
    email_from: str | None = None
    email_subject: str | None = DEFAULT_EMAIL_SUBJECT
    email_body: str | None = None
    smtp_host: str | None = None
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_user: str | None = None
    smtp_pass: str | None = None

    @property
    def threshold_minutes(self) -> int:
        return self.abandoned_threshold_min or DEFAULT_ABANDONED_THRESHOLD_MIN

    @property
    def subject(self) -> str:
        return self.email_subject or DEFAULT_EMAIL_SUBJECT
