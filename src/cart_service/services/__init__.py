"""Business logic services."""

from cart_service.services.abandonment import AbandonmentScanner, ScanResult
from cart_service.services.analytics import AnalyticsAggregator, AnalyticsSummary
from cart_service.services.lifecycle import CartLifecycleManager
from cart_service.services.notifier import (
    MockNotifier,
    NotificationResult,
    Notifier,
    SmtpNotifier,
)

__all__ = [
    "AbandonmentScanner",
    "AnalyticsAggregator",
    "AnalyticsSummary",
    "CartLifecycleManager",
    "MockNotifier",
    "NotificationResult",
    "Notifier",
    "ScanResult",
    "SmtpNotifier",
]
