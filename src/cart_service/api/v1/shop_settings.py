"""Per-shop recovery settings."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cart_service.api.v1.deps import get_shop_settings_repository
from cart_service.domain import ShopSettings
from cart_service.infrastructure.database.repository import ShopSettingsRepository
from shared.constants import (
    DEFAULT_ABANDONED_THRESHOLD_MIN,
    DEFAULT_EMAIL_SUBJECT,
    DEFAULT_SMTP_PORT,
)

router = APIRouter()


class ShopSettingsRequest(BaseModel):
    """Settings submitted from the dashboard.

    Leaving ``smtp_pass`` out keeps the stored password.
    """

    abandoned_threshold_min: int = Field(DEFAULT_ABANDONED_THRESHOLD_MIN, ge=1, le=10080)
    email_enabled: bool = False
    email_from: str | None = None
    email_subject: str | None = DEFAULT_EMAIL_SUBJECT
    email_body: str | None = None
    smtp_host: str | None = None
    smtp_port: int = Field(DEFAULT_SMTP_PORT, ge=1, le=65535)
    smtp_user: str | None = None
    smtp_pass: str | None = None


class ShopSettingsResponse(BaseModel):
    """Stored settings; the SMTP password is never echoed back."""

    shop: str
    abandoned_threshold_min: int
    email_enabled: bool
    email_from: str | None
    email_subject: str
    email_body: str | None
    smtp_host: str | None
    smtp_port: int
    smtp_user: str | None
    smtp_password_set: bool

    @classmethod
    def from_settings(cls, settings: ShopSettings) -> "ShopSettingsResponse":
        return cls(
            shop=settings.shop,
            abandoned_threshold_min=settings.threshold_minutes,
            email_enabled=settings.email_enabled,
            email_from=settings.email_from,
            email_subject=settings.subject,
            email_body=settings.email_body,
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password_set=bool(settings.smtp_pass),
        )


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


@router.get("/{shop}/settings", response_model=ShopSettingsResponse)
async def get_shop_settings(
    shop: str,
    repository: ShopSettingsRepository = Depends(get_shop_settings_repository),
) -> ShopSettingsResponse:
    """Current settings, or the defaults for a shop that has never saved any."""
    settings = await repository.get(shop) or ShopSettings(shop=shop)
    return ShopSettingsResponse.from_settings(settings)


@router.put("/{shop}/settings", response_model=ShopSettingsResponse)
async def update_shop_settings(
    shop: str,
    request: ShopSettingsRequest,
    repository: ShopSettingsRepository = Depends(get_shop_settings_repository),
) -> ShopSettingsResponse:
    """Create or replace the shop's abandonment and e-mail settings."""
    smtp_pass = request.smtp_pass
    if smtp_pass is None:
        existing = await repository.get(shop)
        smtp_pass = existing.smtp_pass if existing else None

    saved = await repository.save(
        ShopSettings(
            shop=shop,
            abandoned_threshold_min=request.abandoned_threshold_min,
            email_enabled=request.email_enabled,
            email_from=_blank_to_none(request.email_from),
            email_subject=_blank_to_none(request.email_subject) or DEFAULT_EMAIL_SUBJECT,
            email_body=_blank_to_none(request.email_body),
            smtp_host=_blank_to_none(request.smtp_host),
            smtp_port=request.smtp_port,
            smtp_user=_blank_to_none(request.smtp_user),
            smtp_pass=smtp_pass or None,
        )
    )
    return ShopSettingsResponse.from_settings(saved)
