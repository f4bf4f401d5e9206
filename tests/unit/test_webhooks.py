"""Unit tests for the webhook endpoint."""

import pytest
from fastapi.testclient import TestClient

from cart_service.api.v1.webhooks import normalize_topic
from cart_service.domain import CartStatus

WEBHOOK_URL = "/api/v1/webhooks"


def _headers(topic: str, shop: str) -> dict:
    return {"X-Shopify-Topic": topic, "X-Shopify-Shop-Domain": shop}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("carts/create", "CARTS_CREATE"),
        ("CARTS_CREATE", "CARTS_CREATE"),
        (" checkouts/update ", "CHECKOUTS_UPDATE"),
        ("app/uninstalled", "APP_UNINSTALLED"),
    ],
)
def test_normalize_topic(raw: str, expected: str) -> None:
    assert normalize_topic(raw) == expected


def test_cart_create_tracks_cart(
    client: TestClient, cart_repository, shop: str, cart_payload: dict
) -> None:
    """Test a cart create event records an active cart."""
    response = client.post(WEBHOOK_URL, json=cart_payload, headers=_headers("carts/create", shop))

    assert response.status_code == 200
    assert response.text == "OK"

    carts = cart_repository.all(shop)
    assert len(carts) == 1
    assert carts[0].cart_token == "abc"
    assert carts[0].status == CartStatus.ACTIVE
    assert str(carts[0].total_price) == "49.90"


def test_cart_update_overwrites(
    client: TestClient, cart_repository, shop: str, cart_payload: dict
) -> None:
    client.post(WEBHOOK_URL, json=cart_payload, headers=_headers("carts/create", shop))
    response = client.post(
        WEBHOOK_URL,
        json={**cart_payload, "total_price": "59.90"},
        headers=_headers("CARTS_UPDATE", shop),
    )

    assert response.status_code == 200
    carts = cart_repository.all(shop)
    assert len(carts) == 1
    assert str(carts[0].total_price) == "59.90"


def test_checkout_uses_top_level_email(
    client: TestClient, cart_repository, shop: str, cart_payload: dict
) -> None:
    client.post(
        WEBHOOK_URL,
        json={**cart_payload, "email": "buyer@example.com"},
        headers=_headers("checkouts/create", shop),
    )

    assert cart_repository.all(shop)[0].customer_email == "buyer@example.com"


@pytest.mark.parametrize("topic", ["carts/create", "carts/update", "checkouts/create", "checkouts/update"])
def test_cart_event_without_token_is_rejected(
    client: TestClient, cart_repository, shop: str, topic: str
) -> None:
    """Test that cart events must carry a token."""
    response = client.post(
        WEBHOOK_URL, json={"total_price": "10.00"}, headers=_headers(topic, shop)
    )

    assert response.status_code == 400
    assert "token" in response.json()["detail"]
    assert cart_repository.all(shop) == []


def test_negative_total_is_rejected(
    client: TestClient, cart_repository, shop: str, cart_payload: dict
) -> None:
    response = client.post(
        WEBHOOK_URL,
        json={**cart_payload, "total_price": "-1"},
        headers=_headers("carts/create", shop),
    )

    assert response.status_code == 400
    assert cart_repository.all(shop) == []


def test_non_json_body_is_rejected(client: TestClient, shop: str) -> None:
    response = client.post(
        WEBHOOK_URL,
        content=b"not json",
        headers={**_headers("carts/create", shop), "Content-Type": "application/json"},
    )

    assert response.status_code == 400


def test_json_array_body_is_rejected(client: TestClient, shop: str) -> None:
    response = client.post(WEBHOOK_URL, json=[1, 2], headers=_headers("carts/create", shop))

    assert response.status_code == 400


def test_missing_headers_are_rejected(client: TestClient, cart_payload: dict) -> None:
    response = client.post(WEBHOOK_URL, json=cart_payload)

    assert response.status_code == 422


def test_order_converts_cart_by_checkout_token(
    client: TestClient, cart_repository, cart_factory, shop: str
) -> None:
    cart_repository.add(cart_factory("abc"))

    response = client.post(
        WEBHOOK_URL,
        json={"id": 1001, "checkout_token": "abc"},
        headers=_headers("orders/create", shop),
    )

    assert response.status_code == 200
    assert cart_repository.all(shop)[0].status == CartStatus.CONVERTED


def test_order_falls_back_to_cart_token(
    client: TestClient, cart_repository, cart_factory, shop: str
) -> None:
    cart_repository.add(cart_factory("abc", status=CartStatus.ABANDONED))

    client.post(WEBHOOK_URL, json={"cart_token": "abc"}, headers=_headers("ORDERS_CREATE", shop))

    assert cart_repository.all(shop)[0].status == CartStatus.CONVERTED


def test_order_for_unknown_cart_creates_nothing(
    client: TestClient, cart_repository, shop: str
) -> None:
    response = client.post(
        WEBHOOK_URL, json={"checkout_token": "ghost"}, headers=_headers("orders/create", shop)
    )

    assert response.status_code == 200
    assert cart_repository.all(shop) == []


def test_order_without_token_is_acknowledged(client: TestClient, shop: str) -> None:
    response = client.post(WEBHOOK_URL, json={"id": 5}, headers=_headers("orders/create", shop))

    assert response.status_code == 200
    assert response.text == "OK"


def test_update_after_conversion_keeps_converted(
    client: TestClient, cart_repository, shop: str, cart_payload: dict
) -> None:
    client.post(WEBHOOK_URL, json=cart_payload, headers=_headers("carts/create", shop))
    client.post(WEBHOOK_URL, json={"checkout_token": "abc"}, headers=_headers("orders/create", shop))
    client.post(
        WEBHOOK_URL,
        json={**cart_payload, "total_price": "1.00"},
        headers=_headers("carts/update", shop),
    )

    assert cart_repository.all(shop)[0].status == CartStatus.CONVERTED


@pytest.mark.parametrize("topic", ["app/uninstalled", "products/update"])
def test_other_topics_are_acknowledged(
    client: TestClient, cart_repository, shop: str, topic: str
) -> None:
    response = client.post(WEBHOOK_URL, json={"id": 1}, headers=_headers(topic, shop))

    assert response.status_code == 200
    assert cart_repository.all(shop) == []
