"""Celery application for the notification worker."""

from celery import Celery

from restock_service.config import Settings, get_settings
from restock_service.infrastructure.observability import configure_logging

settings = get_settings()

configure_logging(settings)

# Create Celery app
app = Celery(
    "email_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "email_worker.tasks.back_in_stock",
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
    task_default_queue="email",
    task_routes={
        "email_worker.tasks.*": {"queue": "email"},
    },
)


def build_beat_schedule(settings: Settings) -> dict:
    """Periodic tasks; queue draining only when the worker owns it."""
    schedule = {
        # Pick up restocks whose trigger never fired
        "sweep-restocked-products": {
            "task": "email_worker.tasks.back_in_stock.sweep_restocked_products",
            "schedule": 15 * 60.0,
        },
    }
    if settings.queue_processing_owner == "worker":
        schedule["process-notification-queue"] = {
            "task": "email_worker.tasks.back_in_stock.process_notification_queue",
            "schedule": settings.queue_poll_interval_seconds,
        }
    return schedule


# Beat schedule for periodic tasks
app.conf.beat_schedule = build_beat_schedule(settings)


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "email"])


if __name__ == "__main__":
    run()
