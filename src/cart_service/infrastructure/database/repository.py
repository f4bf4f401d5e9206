"""Cart and shop-settings repositories.

Every mutation is a single conditional statement keyed by ``(shop,
cart_token)`` or ``id`` and runs in its own transaction. A statement that
matches no row means a concurrent writer got there first; callers treat it as
a no-op, never as an error.
"""

from datetime import datetime
from decimal import Decimal
from typing import Protocol

import structlog
from sqlalchemy import Select, Update, case, func, literal, or_, select, update
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cart_service.domain import (
    CartChanges,
    CartRecord,
    CartStatus,
    LineItem,
    ShopSettings,
    StatusTotals,
    as_utc,
    to_decimal,
)
from cart_service.infrastructure.database.connection import get_session_factory
from cart_service.infrastructure.database.models import CartEvent, ShopSetting

logger = structlog.get_logger()

_STATUS_TYPE = CartEvent.__table__.c.status.type


class CartRepository(Protocol):
    """Durable keyed storage for cart records."""

    async def get(self, shop: str, cart_token: str) -> CartRecord | None: ...

    async def create(self, record: CartRecord) -> CartRecord | None: ...

    async def apply_update(
        self, shop: str, cart_token: str, changes: CartChanges
    ) -> CartRecord | None: ...

    async def mark_converted(self, shop: str, cart_token: str) -> int: ...

    async def find_stale(self, shop: str, cutoff: datetime) -> list[CartRecord]: ...

    async def mark_abandoned(
        self, cart_id: int, cutoff: datetime, abandoned_at: datetime
    ) -> bool: ...

    async def find_awaiting_notification(
        self, shop: str, abandoned_since: datetime
    ) -> list[CartRecord]: ...

    async def claim_notification(self, cart_id: int, sent_at: datetime) -> bool: ...

    async def release_notification(self, cart_id: int, sent_at: datetime) -> bool: ...

    async def status_totals(self, shop: str, since: datetime) -> list[StatusTotals]: ...

    async def recent(self, shop: str, since: datetime, limit: int) -> list[CartRecord]: ...

    async def list_active(
        self, shop: str, updated_since: datetime, limit: int
    ) -> list[CartRecord]: ...

    async def shops_needing_scan(self) -> list[str]: ...


class ShopSettingsRepository(Protocol):
    """Read/write access to per-shop settings."""

    async def get(self, shop: str) -> ShopSettings | None: ...

    async def save(self, settings: ShopSettings) -> ShopSettings: ...


# =============================================================================
# Row mapping
# =============================================================================


def to_record(row: CartEvent) -> CartRecord:
    """Map an ORM row to a domain record, decoding line items."""
    return CartRecord(
        id=row.id,
        shop=row.shop,
        cart_token=row.cart_token,
        customer_id=row.customer_id,
        customer_email=row.customer_email,
        total_price=to_decimal(row.total_price),
        currency=row.currency,
        line_items=[LineItem.from_dict(item) for item in (row.line_items or [])],
        status=CartStatus.parse(row.status),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        abandoned_at=as_utc(row.abandoned_at) if row.abandoned_at else None,
        email_sent_at=as_utc(row.email_sent_at) if row.email_sent_at else None,
    )


def _change_values(changes: CartChanges) -> dict:
    return {
        "customer_id": changes.customer_id,
        "customer_email": changes.customer_email,
        "total_price": changes.total_price,
        "currency": changes.currency,
        "line_items": [item.to_dict() for item in changes.line_items],
        "updated_at": changes.updated_at,
    }


# =============================================================================
# Statements
# =============================================================================


def create_cart_statement(record: CartRecord) -> Insert:
    """INSERT that silently yields nothing when the key already exists."""
    return (
        insert(CartEvent)
        .values(
            shop=record.shop,
            cart_token=record.cart_token,
            customer_id=record.customer_id,
            customer_email=record.customer_email,
            total_price=record.total_price,
            currency=record.currency,
            line_items=[item.to_dict() for item in record.line_items],
            status=record.status,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        .on_conflict_do_nothing(constraint="uq_cart_events_shop_token")
        .returning(CartEvent)
    )


def update_cart_statement(shop: str, cart_token: str, changes: CartChanges) -> Update:
    """Overwrite mutable fields; status returns to active unless converted."""
    return (
        update(CartEvent)
        .where(CartEvent.shop == shop, CartEvent.cart_token == cart_token)
        .values(
            **_change_values(changes),
            status=case(
                (CartEvent.status == CartStatus.CONVERTED, CartEvent.status),
                else_=literal(CartStatus.ACTIVE, _STATUS_TYPE),
            ),
        )
        .returning(CartEvent)
        .execution_options(synchronize_session=False)
    )


def convert_cart_statement(shop: str, cart_token: str) -> Update:
    return (
        update(CartEvent)
        .where(
            CartEvent.shop == shop,
            CartEvent.cart_token == cart_token,
            CartEvent.status != CartStatus.CONVERTED,
        )
        .values(status=CartStatus.CONVERTED)
        .execution_options(synchronize_session=False)
    )


def stale_carts_query(shop: str, cutoff: datetime) -> Select:
    return (
        select(CartEvent)
        .where(
            CartEvent.shop == shop,
            CartEvent.status == CartStatus.ACTIVE,
            CartEvent.updated_at < cutoff,
            CartEvent.total_price > 0,
        )
        .order_by(CartEvent.updated_at)
    )


def abandon_cart_statement(cart_id: int, cutoff: datetime, abandoned_at: datetime) -> Update:
    """Re-check staleness in the write so a cart touched since selection is left alone."""
    return (
        update(CartEvent)
        .where(
            CartEvent.id == cart_id,
            CartEvent.status == CartStatus.ACTIVE,
            CartEvent.updated_at < cutoff,
            CartEvent.total_price > 0,
        )
        .values(status=CartStatus.ABANDONED, abandoned_at=abandoned_at)
        .execution_options(synchronize_session=False)
    )


def claim_notification_statement(cart_id: int, sent_at: datetime) -> Update:
    """Stamp ``email_sent_at`` before sending; only one claimant can win, and only while abandoned."""
    return (
        update(CartEvent)
        .where(
            CartEvent.id == cart_id,
            CartEvent.status == CartStatus.ABANDONED,
            CartEvent.email_sent_at.is_(None),
        )
        .values(email_sent_at=sent_at)
        .execution_options(synchronize_session=False)
    )


def release_notification_statement(cart_id: int, sent_at: datetime) -> Update:
    """Undo a claim after a failed send so a later scan can retry."""
    return (
        update(CartEvent)
        .where(CartEvent.id == cart_id, CartEvent.email_sent_at == sent_at)
        .values(email_sent_at=None)
        .execution_options(synchronize_session=False)
    )


def _awaiting_notification_clause():
    return (
        (CartEvent.status == CartStatus.ABANDONED)
        & CartEvent.email_sent_at.is_(None)
        & CartEvent.customer_email.is_not(None)
    )


# =============================================================================
# SQLAlchemy implementations
# =============================================================================


class SqlAlchemyCartRepository:
    """PostgreSQL-backed cart repository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory or get_session_factory()

    async def get(self, shop: str, cart_token: str) -> CartRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CartEvent).where(
                    CartEvent.shop == shop, CartEvent.cart_token == cart_token
                )
            )
            row = result.scalars().first()
            return to_record(row) if row else None

    async def create(self, record: CartRecord) -> CartRecord | None:
        async with self._session_factory.begin() as session:
            result = await session.execute(create_cart_statement(record))
            row = result.scalars().first()
            return to_record(row) if row else None

    async def apply_update(
        self, shop: str, cart_token: str, changes: CartChanges
    ) -> CartRecord | None:
        async with self._session_factory.begin() as session:
            result = await session.execute(update_cart_statement(shop, cart_token, changes))
            row = result.scalars().first()
            return to_record(row) if row else None

    async def mark_converted(self, shop: str, cart_token: str) -> int:
        async with self._session_factory.begin() as session:
            result = await session.execute(convert_cart_statement(shop, cart_token))
            return result.rowcount

    async def find_stale(self, shop: str, cutoff: datetime) -> list[CartRecord]:
        async with self._session_factory() as session:
            result = await session.execute(stale_carts_query(shop, cutoff))
            return [to_record(row) for row in result.scalars()]

    async def mark_abandoned(
        self, cart_id: int, cutoff: datetime, abandoned_at: datetime
    ) -> bool:
        async with self._session_factory.begin() as session:
            result = await session.execute(
                abandon_cart_statement(cart_id, cutoff, abandoned_at)
            )
            return result.rowcount > 0

    async def find_awaiting_notification(
        self, shop: str, abandoned_since: datetime
    ) -> list[CartRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CartEvent)
                .where(
                    CartEvent.shop == shop,
                    _awaiting_notification_clause(),
                    CartEvent.abandoned_at >= abandoned_since,
                )
                .order_by(CartEvent.abandoned_at)
            )
            return [to_record(row) for row in result.scalars()]

    async def claim_notification(self, cart_id: int, sent_at: datetime) -> bool:
        async with self._session_factory.begin() as session:
            result = await session.execute(claim_notification_statement(cart_id, sent_at))
            return result.rowcount > 0

    async def release_notification(self, cart_id: int, sent_at: datetime) -> bool:
        async with self._session_factory.begin() as session:
            result = await session.execute(release_notification_statement(cart_id, sent_at))
            return result.rowcount > 0

    async def status_totals(self, shop: str, since: datetime) -> list[StatusTotals]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    CartEvent.status,
                    func.count(CartEvent.id),
                    func.coalesce(func.sum(CartEvent.total_price), 0),
                )
                .where(CartEvent.shop == shop, CartEvent.created_at >= since)
                .group_by(CartEvent.status)
            )
            return [
                StatusTotals(
                    status=CartStatus.parse(status),
                    count=int(count),
                    revenue=Decimal(str(revenue)),
                )
                for status, count, revenue in result.all()
            ]

    async def recent(self, shop: str, since: datetime, limit: int) -> list[CartRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CartEvent)
                .where(CartEvent.shop == shop, CartEvent.created_at >= since)
                .order_by(CartEvent.created_at.desc())
                .limit(limit)
            )
            return [to_record(row) for row in result.scalars()]

    async def list_active(
        self, shop: str, updated_since: datetime, limit: int
    ) -> list[CartRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CartEvent)
                .where(
                    CartEvent.shop == shop,
                    CartEvent.status == CartStatus.ACTIVE,
                    CartEvent.updated_at >= updated_since,
                )
                .order_by(CartEvent.updated_at.desc())
                .limit(limit)
            )
            return [to_record(row) for row in result.scalars()]

    async def shops_needing_scan(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CartEvent.shop)
                .where(
                    or_(
                        CartEvent.status == CartStatus.ACTIVE,
                        _awaiting_notification_clause(),
                    )
                )
                .distinct()
                .order_by(CartEvent.shop)
            )
            return list(result.scalars())


def _to_settings(row: ShopSetting) -> ShopSettings:
    return ShopSettings(
        shop=row.shop,
        abandoned_threshold_min=row.abandoned_threshold_min,
        email_enabled=row.email_enabled,
        email_from=row.email_from,
        email_subject=row.email_subject,
        email_body=row.email_body,
        smtp_host=row.smtp_host,
        smtp_port=row.smtp_port,
        smtp_user=row.smtp_user,
        smtp_pass=row.smtp_pass,
    )


class SqlAlchemyShopSettingsRepository:
    """PostgreSQL-backed shop settings repository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory or get_session_factory()

    async def get(self, shop: str) -> ShopSettings | None:
        async with self._session_factory() as session:
            row = await session.get(ShopSetting, shop)
            return _to_settings(row) if row else None

    async def save(self, settings: ShopSettings) -> ShopSettings:
        values = {
            "abandoned_threshold_min": settings.threshold_minutes,
            "email_enabled": settings.email_enabled,
            "email_from": settings.email_from,
            "email_subject": settings.email_subject,
            "email_body": settings.email_body,
            "smtp_host": settings.smtp_host,
            "smtp_port": settings.smtp_port,
            "smtp_user": settings.smtp_user,
            "smtp_pass": settings.smtp_pass,
        }
        stmt = (
            insert(ShopSetting)
            .values(shop=settings.shop, **values)
            .on_conflict_do_update(
                index_elements=[ShopSetting.shop],
                set_={**values, "updated_at": func.now()},
            )
            .returning(ShopSetting)
        )
        async with self._session_factory.begin() as session:
            result = await session.execute(stmt)
            row = result.scalars().one()
            logger.info("Shop settings saved", shop=settings.shop)
            return _to_settings(row)
