"""Recovery notification senders.

A notifier never raises for delivery problems: it returns a
``NotificationResult`` whose ``failure`` tells the scanner what went wrong.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import make_msgid
from enum import Enum
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

import aiosmtplib
import orjson
import structlog

from cart_service.config import Settings, get_settings
from cart_service.domain import CartRecord, ShopSettings
from cart_service.services.email_template import render_recovery_email
from shared.constants import SMTP_SSL_PORT

logger = structlog.get_logger()


class FailureKind(str, Enum):
    """Why a notification was not delivered."""

    TRANSPORT = "transport"
    CONFIG = "config"
    RECIPIENT_MISSING = "recipient_missing"


@dataclass(frozen=True)
class NotificationFailure:
    kind: FailureKind
    reason: str


@dataclass(frozen=True)
class NotificationResult:
    """Outcome of one send attempt."""

    failure: NotificationFailure | None = None
    message_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def sent(cls, message_id: str | None = None) -> "NotificationResult":
        return cls(message_id=message_id)

    @classmethod
    def failed(cls, kind: FailureKind, reason: str) -> "NotificationResult":
        return cls(failure=NotificationFailure(kind=kind, reason=reason))


class Notifier(Protocol):
    async def send(
        self, shop: str, cart: CartRecord, settings: ShopSettings
    ) -> NotificationResult: ...


def check_prerequisites(cart: CartRecord, settings: ShopSettings) -> NotificationResult | None:
    """Return a failure when the cart or the shop settings cannot produce an e-mail."""
    if not cart.customer_email:
        return NotificationResult.failed(
            FailureKind.RECIPIENT_MISSING, "Cart has no customer e-mail"
        )
    if not settings.smtp_host or not settings.email_from:
        return NotificationResult.failed(
            FailureKind.CONFIG, "Email configuration incomplete"
        )
    return None


def build_message(shop: str, cart: CartRecord, settings: ShopSettings) -> EmailMessage:
    message = EmailMessage()
    message["From"] = settings.email_from
    message["To"] = cart.customer_email
    message["Subject"] = settings.subject
    message["Message-ID"] = make_msgid()
    message.set_content(render_recovery_email(shop, cart, settings), subtype="html")
    return message


class SmtpNotifier:
    """Sends recovery e-mails through the shop's own SMTP server."""

    def __init__(self, timeout_seconds: int = 10):
        self.timeout_seconds = timeout_seconds

    async def send(
        self, shop: str, cart: CartRecord, settings: ShopSettings
    ) -> NotificationResult:
        problem = check_prerequisites(cart, settings)
        if problem:
            return problem

        message = build_message(shop, cart, settings)
        try:
            await aiosmtplib.send(
                message,
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user or None,
                password=settings.smtp_pass or None,
                use_tls=settings.smtp_port == SMTP_SSL_PORT,
                timeout=self.timeout_seconds,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            return NotificationResult.failed(FailureKind.TRANSPORT, str(e) or type(e).__name__)

        logger.info(
            "Recovery email sent",
            shop=shop,
            cart_token=cart.cart_token,
            to_email=cart.customer_email,
        )
        return NotificationResult.sent(message_id=message.get("Message-ID"))


class MockNotifier:
    """
    Mock notifier for testing and development.

    Records rendered e-mails in memory and, when a storage path is given,
    as JSON files for inspection instead of delivering them.
    """

    def __init__(self, storage_path: str | None = None):
        self.storage_path = Path(storage_path) if storage_path else None
        if self.storage_path:
            self.storage_path.mkdir(parents=True, exist_ok=True)
        self.sent_emails: list[dict[str, Any]] = []

    async def send(
        self, shop: str, cart: CartRecord, settings: ShopSettings
    ) -> NotificationResult:
        problem = check_prerequisites(cart, settings)
        if problem:
            return problem

        message_id = str(uuid4())
        timestamp = datetime.now(timezone.utc)
        email_record = {
            "message_id": message_id,
            "shop": shop,
            "cart_token": cart.cart_token,
            "to_email": cart.customer_email,
            "from_email": settings.email_from,
            "subject": settings.subject,
            "html_content": render_recovery_email(shop, cart, settings),
            "sent_at": timestamp.isoformat(),
        }
        self.sent_emails.append(email_record)

        stored_at = None
        if self.storage_path:
            filepath = self.storage_path / f"{timestamp.strftime('%Y%m%d_%H%M%S')}_{message_id}.json"
            filepath.write_bytes(orjson.dumps(email_record, option=orjson.OPT_INDENT_2))
            stored_at = str(filepath)

        logger.info(
            "Mock email sent",
            message_id=message_id,
            shop=shop,
            to_email=cart.customer_email,
            stored_at=stored_at,
        )
        return NotificationResult.sent(message_id=message_id)

    def get_sent_emails(self, to_email: str | None = None) -> list[dict[str, Any]]:
        if to_email:
            return [e for e in self.sent_emails if e["to_email"] == to_email]
        return list(self.sent_emails)


_notifier: Notifier | None = None


def build_notifier(settings: Settings) -> Notifier:
    if settings.email_service == "smtp":
        return SmtpNotifier(timeout_seconds=settings.smtp_timeout_seconds)
    return MockNotifier(storage_path=settings.mock_email_storage_path)


def get_notifier() -> Notifier:
    """Get the singleton notifier selected by ``email_service``."""
    global _notifier
    if _notifier is None:
        _notifier = build_notifier(get_settings())
    return _notifier
