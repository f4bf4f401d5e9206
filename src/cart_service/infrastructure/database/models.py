"""SQLAlchemy models for cart tracking.

These models are stored in the 'cart_tracker' schema.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from cart_service.domain import CartStatus
from shared.constants import (
    DEFAULT_ABANDONED_THRESHOLD_MIN,
    DEFAULT_CURRENCY,
    DEFAULT_SMTP_PORT,
)

# Schema for all cart tracking tables
SCHEMA = "cart_tracker"


class Base(DeclarativeBase):
    """Base class for all models."""

    __table_args__ = {"schema": SCHEMA}


# =============================================================================
# Cart Events
# =============================================================================


class CartEvent(Base):
    """Latest known state of a storefront cart, one row per (shop, cart_token)."""

    __tablename__ = "cart_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop: Mapped[str] = mapped_column(String(255), nullable=False)
    cart_token: Mapped[str] = mapped_column(String(255), nullable=False)

    customer_id: Mapped[Optional[str]] = mapped_column(String(255))
    customer_email: Mapped[Optional[str]] = mapped_column(String(320))

    total_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default=DEFAULT_CURRENCY)

    # [{title, variant_title, quantity, price}]
    line_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[CartStatus] = mapped_column(
        Enum(CartStatus, name="cartstatus", schema=SCHEMA),
        nullable=False,
        default=CartStatus.ACTIVE,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    abandoned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("shop", "cart_token", name="uq_cart_events_shop_token"),
        CheckConstraint("total_price >= 0", name="ck_cart_events_total_price_non_negative"),
        # Staleness scan and live-cart listing
        Index("ix_cart_events_shop_status_updated", "shop", "status", "updated_at"),
        # Analytics window
        Index("ix_cart_events_shop_created", "shop", "created_at"),
        {"schema": SCHEMA},
    )


# =============================================================================
# Shop Settings
# =============================================================================


class ShopSetting(Base):
    """Per-shop abandonment threshold and recovery e-mail configuration."""

    __tablename__ = "shop_settings"

    shop: Mapped[str] = mapped_column(String(255), primary_key=True)
    abandoned_threshold_min: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_ABANDONED_THRESHOLD_MIN
    )

    email_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_from: Mapped[Optional[str]] = mapped_column(String(320))
    email_subject: Mapped[Optional[str]] = mapped_column(String(255))
    email_body: Mapped[Optional[str]] = mapped_column(Text)

    smtp_host: Mapped[Optional[str]] = mapped_column(String(255))
    smtp_port: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_SMTP_PORT)
    smtp_user: Mapped[Optional[str]] = mapped_column(String(255))
    smtp_pass: Mapped[Optional[str]] = mapped_column(String(255))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = ({"schema": SCHEMA},)
