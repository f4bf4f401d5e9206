"""Inbound webhook payload models."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cart_service.domain import CartChanges, LineItem, as_utc, round_money
from shared.constants import DEFAULT_CURRENCY


class CustomerPayload(BaseModel):
    """Customer block of a cart/checkout payload."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    email: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str | None:
        if v is None or v == "":
            return None
        return str(v)


class LineItemPayload(BaseModel):
    """Line item as delivered by the storefront."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    variant_title: str | None = None
    quantity: int = Field(1, ge=0)
    price: Decimal = Field(Decimal("0"), ge=0)

    def to_line_item(self) -> LineItem:
        return LineItem(
            title=self.title or "",
            variant_title=self.variant_title,
            quantity=self.quantity,
            price=round_money(self.price),
        )


class CartPayload(BaseModel):
    """Cart or checkout snapshot from a create/update webhook.

    Checkout payloads carry the buyer's address at top level (``email``);
    it is used when the customer block has none.
    """

    model_config = ConfigDict(extra="ignore")

    token: str = Field(..., min_length=1)
    customer: CustomerPayload | None = None
    email: str | None = None
    total_price: Decimal = Field(Decimal("0"), ge=0)
    currency: str | None = None
    line_items: list[LineItemPayload] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("total_price", mode="before")
    @classmethod
    def blank_total_is_zero(cls, v: Any) -> Any:
        return "0" if v is None or v == "" else v

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamp(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else None

    @property
    def customer_email(self) -> str | None:
        if self.customer and self.customer.email:
            return self.customer.email
        return self.email or None

    @property
    def customer_id(self) -> str | None:
        return self.customer.id if self.customer else None

    def to_changes(self, received_at: datetime) -> CartChanges:
        """Mutable fields of this snapshot; ``received_at`` fills a missing ``updated_at``."""
        return CartChanges(
            customer_id=self.customer_id,
            customer_email=self.customer_email,
            total_price=round_money(self.total_price),
            currency=self.currency or DEFAULT_CURRENCY,
            line_items=[item.to_line_item() for item in self.line_items],
            updated_at=self.updated_at or received_at,
        )


class OrderPayload(BaseModel):
    """Order-placed webhook; only the originating cart/checkout token matters."""

    model_config = ConfigDict(extra="ignore")

    checkout_token: str | None = None
    cart_token: str | None = None

    @property
    def token(self) -> str | None:
        return self.checkout_token or self.cart_token
