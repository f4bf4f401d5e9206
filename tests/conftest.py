"""Pytest configuration and fixtures."""

import copy
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import pytest
from fastapi.testclient import TestClient

from cart_service.api.v1 import deps
from cart_service.config import Settings, get_settings
from cart_service.domain import (
    CartChanges,
    CartRecord,
    CartStatus,
    LifecycleEvent,
    ShopSettings,
    StatusTotals,
    can_transition,
    next_status,
)
from cart_service.infrastructure.database.connection import database_ready
from cart_service.infrastructure.redis import ScanLock
from cart_service.main import create_app
from cart_service.services.abandonment import AbandonmentScanner
from cart_service.services.analytics import AnalyticsAggregator
from cart_service.services.lifecycle import CartLifecycleManager
from cart_service.services.notifier import (
    FailureKind,
    NotificationResult,
    check_prerequisites,
)
from cart_service.services.notifier import get_notifier

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
SHOP = "demo-shop.myshopify.com"


# =============================================================================
# Test doubles
# =============================================================================


class FixedClock:
    """Controllable replacement for ``utcnow``."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class InMemoryCartRepository:
    """Cart repository with the same conditional-update semantics as the SQL one."""

    def __init__(self) -> None:
        self.rows: dict[int, CartRecord] = {}
        self._next_id = 1

    def add(self, record: CartRecord) -> CartRecord:
        record = copy.deepcopy(record)
        record.id = self._next_id
        self._next_id += 1
        self.rows[record.id] = record
        return copy.deepcopy(record)

    def _find(self, shop: str, cart_token: str) -> CartRecord | None:
        for row in self.rows.values():
            if row.shop == shop and row.cart_token == cart_token:
                return row
        return None

    def all(self, shop: str = SHOP) -> list[CartRecord]:
        return [copy.deepcopy(r) for r in self.rows.values() if r.shop == shop]

    async def get(self, shop: str, cart_token: str) -> CartRecord | None:
        row = self._find(shop, cart_token)
        return copy.deepcopy(row) if row else None

    async def create(self, record: CartRecord) -> CartRecord | None:
        if self._find(record.shop, record.cart_token):
            return None
        return self.add(record)

    async def apply_update(
        self, shop: str, cart_token: str, changes: CartChanges
    ) -> CartRecord | None:
        row = self._find(shop, cart_token)
        if row is None:
            return None
        row.customer_id = changes.customer_id
        row.customer_email = changes.customer_email
        row.total_price = changes.total_price
        row.currency = changes.currency
        row.line_items = copy.deepcopy(changes.line_items)
        row.updated_at = changes.updated_at
        row.status = next_status(row.status, LifecycleEvent.UPDATE)
        return copy.deepcopy(row)

    async def mark_converted(self, shop: str, cart_token: str) -> int:
        row = self._find(shop, cart_token)
        if row is None or not can_transition(row.status, LifecycleEvent.ORDER_PLACED):
            return 0
        row.status = CartStatus.CONVERTED
        return 1

    async def find_stale(self, shop: str, cutoff: datetime) -> list[CartRecord]:
        stale = [r for r in self.rows.values() if r.shop == shop and r.is_stale(cutoff)]
        return [copy.deepcopy(r) for r in sorted(stale, key=lambda r: r.updated_at)]

    async def mark_abandoned(
        self, cart_id: int, cutoff: datetime, abandoned_at: datetime
    ) -> bool:
        row = self.rows.get(cart_id)
        if row is None or not row.is_stale(cutoff):
            return False
        row.status = next_status(row.status, LifecycleEvent.STALENESS_TIMEOUT)
        row.abandoned_at = abandoned_at
        return True

    async def find_awaiting_notification(
        self, shop: str, abandoned_since: datetime
    ) -> list[CartRecord]:
        return [
            copy.deepcopy(r)
            for r in self.rows.values()
            if r.shop == shop
            and r.awaits_notification()
            and r.abandoned_at is not None
            and r.abandoned_at >= abandoned_since
        ]

    async def claim_notification(self, cart_id: int, sent_at: datetime) -> bool:
        row = self.rows.get(cart_id)
        if row is None or row.status != CartStatus.ABANDONED or row.email_sent_at is not None:
            return False
        row.email_sent_at = sent_at
        return True

    async def release_notification(self, cart_id: int, sent_at: datetime) -> bool:
        row = self.rows.get(cart_id)
        if row is None or row.email_sent_at != sent_at:
            return False
        row.email_sent_at = None
        return True

    async def status_totals(self, shop: str, since: datetime) -> list[StatusTotals]:
        totals: dict[CartStatus, StatusTotals] = {}
        for r in self.rows.values():
            if r.shop != shop or r.created_at < since:
                continue
            t = totals.setdefault(r.status, StatusTotals(r.status, 0, Decimal("0")))
            t.count += 1
            t.revenue += r.total_price
        return list(totals.values())

    async def recent(self, shop: str, since: datetime, limit: int) -> list[CartRecord]:
        rows = [r for r in self.rows.values() if r.shop == shop and r.created_at >= since]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return [copy.deepcopy(r) for r in rows[:limit]]

    async def list_active(
        self, shop: str, updated_since: datetime, limit: int
    ) -> list[CartRecord]:
        rows = [
            r
            for r in self.rows.values()
            if r.shop == shop
            and r.status == CartStatus.ACTIVE
            and r.updated_at >= updated_since
        ]
        rows.sort(key=lambda r: r.updated_at, reverse=True)
        return [copy.deepcopy(r) for r in rows[:limit]]

    async def shops_needing_scan(self) -> list[str]:
        return sorted(
            {
                r.shop
                for r in self.rows.values()
                if r.status == CartStatus.ACTIVE or r.awaits_notification()
            }
        )


class InMemoryShopSettingsRepository:
    def __init__(self) -> None:
        self.settings: dict[str, ShopSettings] = {}

    async def get(self, shop: str) -> ShopSettings | None:
        found = self.settings.get(shop)
        return copy.deepcopy(found) if found else None

    async def save(self, settings: ShopSettings) -> ShopSettings:
        self.settings[settings.shop] = copy.deepcopy(settings)
        return copy.deepcopy(settings)


class RecordingNotifier:
    """Notifier that records calls and fails on demand."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_with: FailureKind | None = None
        self.raise_error: Exception | None = None

    async def send(
        self, shop: str, cart: CartRecord, settings: ShopSettings
    ) -> NotificationResult:
        self.calls.append((shop, cart.cart_token))
        if self.raise_error:
            raise self.raise_error
        if self.fail_with:
            return NotificationResult.failed(self.fail_with, "simulated failure")
        problem = check_prerequisites(cart, settings)
        if problem:
            return problem
        return NotificationResult.sent(message_id=f"msg-{cart.cart_token}")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        postgres_host="localhost",
        postgres_port=5432,
        postgres_user="test",
        postgres_password="test",
        postgres_db="test_db",
        redis_host="localhost",
        redis_port=6379,
        email_service="mock",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def shop() -> str:
    return SHOP


@pytest.fixture
def cart_repository() -> InMemoryCartRepository:
    return InMemoryCartRepository()


@pytest.fixture
def settings_repository() -> InMemoryShopSettingsRepository:
    return InMemoryShopSettingsRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def shop_settings(shop: str) -> ShopSettings:
    """Settings with notifications enabled and a complete SMTP configuration."""
    return ShopSettings(
        shop=shop,
        abandoned_threshold_min=60,
        email_enabled=True,
        email_from="noreply@demo-shop.gr",
        smtp_host="smtp.demo-shop.gr",
        smtp_port=587,
        smtp_user="mailer",
        smtp_pass="secret",
    )


@pytest.fixture
def lifecycle(cart_repository: InMemoryCartRepository, clock: FixedClock) -> CartLifecycleManager:
    return CartLifecycleManager(cart_repository, clock=clock)


@pytest.fixture
def scanner(
    cart_repository: InMemoryCartRepository,
    notifier: RecordingNotifier,
    clock: FixedClock,
) -> AbandonmentScanner:
    return AbandonmentScanner(cart_repository, notifier, clock=clock)


@pytest.fixture
def aggregator(cart_repository: InMemoryCartRepository, clock: FixedClock) -> AnalyticsAggregator:
    return AnalyticsAggregator(cart_repository, clock=clock)


@pytest.fixture
def app(
    test_settings: Settings,
    cart_repository: InMemoryCartRepository,
    settings_repository: InMemoryShopSettingsRepository,
    notifier: RecordingNotifier,
    clock: FixedClock,
) -> Any:
    """Create test application backed by in-memory repositories."""
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[deps.get_cart_repository] = lambda: cart_repository
    app.dependency_overrides[deps.get_shop_settings_repository] = lambda: settings_repository
    app.dependency_overrides[deps.get_scan_lock] = lambda: ScanLock(None)
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[database_ready] = lambda: True
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)


@pytest.fixture
def cart_payload() -> dict:
    """Cart create payload as delivered by the storefront."""
    return {
        "token": "abc",
        "total_price": "49.90",
        "currency": "EUR",
        "line_items": [{"title": "Shoe", "quantity": 1, "price": "49.90"}],
    }


def make_cart(
    token: str,
    *,
    shop: str = SHOP,
    total: str = "30.00",
    status: CartStatus = CartStatus.ACTIVE,
    created_at: datetime = NOW,
    updated_at: datetime | None = None,
    email: str | None = "buyer@example.com",
    abandoned_at: datetime | None = None,
    email_sent_at: datetime | None = None,
) -> CartRecord:
    return CartRecord(
        shop=shop,
        cart_token=token,
        total_price=Decimal(total),
        status=status,
        customer_email=email,
        created_at=created_at,
        updated_at=updated_at or created_at,
        abandoned_at=abandoned_at,
        email_sent_at=email_sent_at,
    )


@pytest.fixture
def cart_factory():
    return make_cart
