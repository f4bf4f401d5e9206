"""Celery application for the abandoned-cart recovery worker."""

from celery import Celery
from celery.schedules import crontab

from cart_service.config import get_settings
from cart_service.main import configure_logging

settings = get_settings()

configure_logging()

# Create Celery app
app = Celery(
    "recovery_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "recovery_worker.tasks.cart_abandonment",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,  # 4 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="recovery",
    task_routes={
        "recovery_worker.tasks.*": {"queue": "recovery"},
    },
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    "scan-abandoned-carts": {
        "task": "recovery_worker.tasks.cart_abandonment.scan_abandoned_carts",
        "schedule": crontab(minute=f"*/{settings.abandonment_scan_interval_minutes}"),
    },
}


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "recovery"])


if __name__ == "__main__":
    run()
