"""Storefront webhook receiver.

Authentication of the delivery happens upstream; this endpoint trusts the
shop and topic headers it is given.
"""

from typing import Annotated, Any, TypeVar

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ValidationError

from cart_service.api.v1.deps import get_lifecycle_manager
from cart_service.schemas import CartPayload, OrderPayload
from cart_service.services.lifecycle import CartLifecycleManager
from shared.constants import APP_UNINSTALLED_TOPIC, CART_TOPICS, ORDER_TOPICS

logger = structlog.get_logger()

router = APIRouter()

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def normalize_topic(topic: str) -> str:
    """``carts/create`` and ``CARTS_CREATE`` name the same topic."""
    return topic.strip().upper().replace("/", "_")


def _validate(model: type[PayloadT], body: dict[str, Any], topic: str) -> PayloadT:
    """Validate before any state is touched; malformed payloads become HTTP 400."""
    try:
        return model.model_validate(body)
    except ValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        logger.warning("Rejected webhook payload", invalid_fields=fields)
        raise HTTPException(
            status_code=400,
            detail=f"Invalid {topic} payload: {', '.join(fields)}",
        )


@router.post("", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    x_shopify_topic: Annotated[str, Header()],
    x_shopify_shop_domain: Annotated[str, Header()],
    lifecycle: CartLifecycleManager = Depends(get_lifecycle_manager),
) -> str:
    """
    Receive a storefront webhook.

    **Topics:**
    - `carts/create`, `carts/update`, `checkouts/create`, `checkouts/update`:
      create or update the tracked cart (payload must carry `token`)
    - `orders/create`: mark the cart named by `checkout_token` or `cart_token`
      as converted
    - `app/uninstalled`: logged only
    """
    topic = normalize_topic(x_shopify_topic)
    shop = x_shopify_shop_domain.strip()
    structlog.contextvars.bind_contextvars(shop=shop, topic=topic)

    try:
        body: Any = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Webhook body must be JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    logger.info("Webhook received")

    if topic in CART_TOPICS:
        payload = _validate(CartPayload, body, topic)
        await lifecycle.upsert(shop, payload)

    elif topic in ORDER_TOPICS:
        order = _validate(OrderPayload, body, topic)
        if order.token:
            await lifecycle.mark_converted(shop, order.token)
        else:
            logger.info("Order without checkout or cart token")

    elif topic == APP_UNINSTALLED_TOPIC:
        logger.warning("App uninstalled")

    else:
        logger.info("Unhandled webhook topic")

    return "OK"
