"""Unit tests for the conditional SQL statements behind the cart repository."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.dialects import postgresql

from cart_service.domain import CartChanges, CartRecord, CartStatus, LineItem
from cart_service.infrastructure.database.models import CartEvent
from cart_service.infrastructure.database.repository import (
    abandon_cart_statement,
    claim_notification_statement,
    convert_cart_statement,
    create_cart_statement,
    release_notification_statement,
    stale_carts_query,
    to_record,
    update_cart_statement,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _sql(stmt) -> str:
    return " ".join(str(stmt.compile(dialect=postgresql.dialect())).split())


def _changes() -> CartChanges:
    return CartChanges(
        total_price=Decimal("59.90"),
        currency="EUR",
        line_items=[LineItem(title="Shoe", price=Decimal("59.90"))],
        updated_at=NOW,
    )


class TestStatements:
    def test_create_ignores_existing_key(self) -> None:
        sql = _sql(create_cart_statement(CartRecord(shop="s", cart_token="t")))

        assert "ON CONFLICT ON CONSTRAINT uq_cart_events_shop_token DO NOTHING" in sql
        assert "RETURNING" in sql

    def test_update_keeps_converted_inside_statement(self) -> None:
        stmt = update_cart_statement("s", "t", _changes())
        sql = _sql(stmt)

        assert "CASE WHEN" in sql
        assert "THEN cart_tracker.cart_events.status ELSE" in sql
        assert "RETURNING" in sql
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert CartStatus.CONVERTED in params.values()
        assert CartStatus.ACTIVE in params.values()

    def test_update_stores_line_items_as_json_dicts(self) -> None:
        params = update_cart_statement("s", "t", _changes()).compile(
            dialect=postgresql.dialect()
        ).params

        assert params["line_items"] == [
            {"title": "Shoe", "variant_title": None, "quantity": 1, "price": "59.90"}
        ]

    def test_convert_skips_converted(self) -> None:
        stmt = convert_cart_statement("s", "t")
        sql = _sql(stmt)

        assert "cart_tracker.cart_events.status != " in sql
        assert "RETURNING" not in sql

    def test_stale_query_excludes_zero_value_carts(self) -> None:
        sql = _sql(stale_carts_query("s", NOW))

        assert "cart_tracker.cart_events.updated_at < " in sql
        assert "cart_tracker.cart_events.total_price > " in sql
        assert "ORDER BY cart_tracker.cart_events.updated_at" in sql

    def test_abandon_rechecks_staleness(self) -> None:
        stmt = abandon_cart_statement(1, NOW - timedelta(hours=1), NOW)
        sql = _sql(stmt)

        assert "cart_tracker.cart_events.id = " in sql
        assert "cart_tracker.cart_events.status = " in sql
        assert "cart_tracker.cart_events.updated_at < " in sql
        assert "cart_tracker.cart_events.total_price > " in sql

    def test_claim_requires_abandoned_and_unsent(self) -> None:
        sql = _sql(claim_notification_statement(1, NOW))

        assert sql.startswith("UPDATE cart_tracker.cart_events SET email_sent_at=")
        assert "cart_tracker.cart_events.id = " in sql
        assert "cart_tracker.cart_events.status = " in sql
        assert "cart_tracker.cart_events.email_sent_at IS NULL" in sql

    def test_release_only_undoes_own_claim(self) -> None:
        stmt = release_notification_statement(1, NOW)
        sql = _sql(stmt)

        assert "cart_tracker.cart_events.email_sent_at = " in sql
        assert "IS NULL" not in sql
        assert NOW in stmt.compile(dialect=postgresql.dialect()).params.values()


class TestRowMapping:
    def test_to_record_decodes_row(self) -> None:
        row = CartEvent(
            id=7,
            shop="s",
            cart_token="t",
            customer_id="42",
            customer_email="buyer@example.com",
            total_price=Decimal("49.90"),
            currency="EUR",
            line_items=[{"title": "Shoe", "variant_title": None, "quantity": 2, "price": "24.95"}],
            status=CartStatus.ABANDONED,
            created_at=datetime(2026, 10, 19, 10, 0),
            updated_at=datetime(2026, 10, 19, 11, 0),
            abandoned_at=None,
            email_sent_at=None,
        )

        record = to_record(row)

        assert record.id == 7
        assert record.status == CartStatus.ABANDONED
        assert record.line_items == [LineItem(title="Shoe", quantity=2, price=Decimal("24.95"))]
        assert record.created_at.tzinfo == timezone.utc
        assert record.abandoned_at is None
