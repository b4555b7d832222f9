# backend/hustle/tasks/celery_app.py
"""
Celery application configuration for Hustle Village.

Redis is the broker; beat drives the outbox dispatcher.
"""

import os
from typing import Any

from celery import Celery
from celery.signals import setup_logging

from hustle.core.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    # Priority: CELERY_BROKER_URL -> settings.celery_broker_url -> settings.redis_url
    broker_url = os.getenv("CELERY_BROKER_URL") or settings.celery_broker_url or settings.redis_url

    celery_app = Celery("hustle", broker=broker_url)

    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": "UTC",
            "enable_utc": True,
            "task_ignore_result": True,
            "worker_prefetch_multiplier": 4,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 120,
            "task_time_limit": 300,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "worker_hijack_root_logger": False,
        }
    )

    celery_app.conf.imports = ("hustle.tasks.outbox_tasks",)
    celery_app.conf.task_routes = {"outbox.*": {"queue": "outbox"}}
    celery_app.conf.beat_schedule = {
        "outbox-dispatch-pending": {
            "task": "outbox.dispatch_pending",
            "schedule": float(settings.outbox_dispatch_interval_seconds),
            "options": {"queue": "outbox"},
        },
    }

    return celery_app


# Disable Celery's default logging configuration
@setup_logging.connect
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to integrate with the application's logging setup."""
    import logging

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()
