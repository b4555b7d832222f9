# backend/hustle/tasks/__init__.py
"""
Celery tasks package for Hustle Village.

Contains the outbox dispatcher that replays secondary writes and sends
notification email.
"""

from hustle.tasks.celery_app import celery_app
from hustle.tasks.outbox_tasks import deliver_event, dispatch_pending

__all__ = ["celery_app", "deliver_event", "dispatch_pending"]
