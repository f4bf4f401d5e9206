"""Shared constants across the application."""

# Webhook topics that carry a cart/checkout snapshot
CART_TOPICS = [
    "CARTS_CREATE",
    "CARTS_UPDATE",
    "CHECKOUTS_CREATE",
    "CHECKOUTS_UPDATE",
]

# Webhook topics that signal a placed order
ORDER_TOPICS = [
    "ORDERS_CREATE",
]

APP_UNINSTALLED_TOPIC = "APP_UNINSTALLED"

# Cart defaults
DEFAULT_CURRENCY = "EUR"
DEFAULT_ABANDONED_THRESHOLD_MIN = 60
DEFAULT_SMTP_PORT = 587
SMTP_SSL_PORT = 465
DEFAULT_EMAIL_SUBJECT = "Ξεχάσατε κάτι στο καλάθι σας; 🛒"

# Default limits
DEFAULT_ANALYTICS_WINDOW_DAYS = 30
DAILY_SERIES_SAMPLE_SIZE = 50
ACTIVE_CART_WINDOW_MINUTES = 5
ACTIVE_CART_LIMIT = 100
