# backend/hustle/tasks/outbox_tasks.py
"""
Celery tasks for dispatching outbox events.

Implements a two-step workflow:
1. `outbox.dispatch_pending` periodically enqueues delivery tasks.
2. `outbox.deliver_event` applies one event with retries and backoff.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from celery.app.task import Task
from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from hustle.api.dependencies.services import get_payment_gateway
from hustle.core.config import settings
from hustle.database import SessionLocal
from hustle.models.event_outbox import EventOutboxStatus
from hustle.monitoring.prometheus_metrics import PrometheusMetrics
from hustle.repositories.event_outbox_repository import EventOutboxRepository
from hustle.services.outbox_handlers import OutboxEventHandler
from hustle.services.payment_service import PaymentService
from hustle.tasks.celery_app import celery_app

logger = get_task_logger(__name__)

BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]

HandlerFactory = Callable[[Session], OutboxEventHandler]


class OutboxDeliveryError(Exception):
    """A delivery attempt failed and has been recorded on the outbox row."""

    def __init__(self, event_id: str, attempt_number: int, backoff: int, terminal: bool, cause: Exception):
        super().__init__(f"Outbox event {event_id} attempt {attempt_number} failed: {cause}")
        self.event_id = event_id
        self.attempt_number = attempt_number
        self.backoff = backoff
        self.terminal = terminal


def _next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


def build_outbox_handler(session: Session) -> OutboxEventHandler:
    return OutboxEventHandler(session, PaymentService(session, get_payment_gateway()))


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Provide transactional scope for use in tasks."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def process_outbox_event(
    session: Session,
    event_id: str,
    handler_factory: HandlerFactory = build_outbox_handler,
    max_attempts: Optional[int] = None,
) -> Optional[str]:
    """
    Apply a single outbox event and record the outcome on its row.

    Returns the event id when delivered, None when the event is missing or
    already settled. Raises OutboxDeliveryError after recording a failure.
    """
    max_attempts = max_attempts or settings.outbox_max_attempts
    repo = EventOutboxRepository(session)
    event = repo.get_by_id(event_id, for_update=True)
    if event is None:
        logger.warning("Outbox event %s missing; skipping", event_id)
        return None
    if event.status != EventOutboxStatus.PENDING.value:
        logger.info("Outbox event %s already %s; skipping", event_id, event.status)
        return None

    attempt_number = event.attempt_count + 1
    event_type = event.event_type
    PrometheusMetrics.record_outbox_attempt(event_type)

    try:
        outcome = handler_factory(session).handle(event_type, dict(event.payload or {}))
    except Exception as exc:
        session.rollback()
        backoff = _next_backoff(attempt_number)
        terminal = attempt_number >= max_attempts
        repo.mark_failed(
            event_id,
            attempt_count=attempt_number,
            backoff_seconds=backoff,
            error=str(exc),
            terminal=terminal,
        )
        session.commit()
        if terminal:
            PrometheusMetrics.record_outbox_outcome(event_type, "failed")
            logger.error("Outbox event %s failed permanently after %s attempts", event_id, attempt_number)
        else:
            logger.warning(
                "Outbox event %s attempt=%s failed; retrying in %ss", event_id, attempt_number, backoff
            )
        raise OutboxDeliveryError(event_id, attempt_number, backoff, terminal, exc) from exc

    repo.mark_sent(event_id, attempt_number)
    session.commit()
    PrometheusMetrics.record_outbox_outcome(event_type, "sent")
    logger.info(
        "Delivered outbox event %s type=%s attempts=%s outcome=%s",
        event_id,
        event_type,
        attempt_number,
        outcome,
    )
    return event_id


@celery_app.task(name="outbox.dispatch_pending", max_retries=0)
def dispatch_pending() -> int:
    """
    Fetch pending outbox events and enqueue delivery tasks.

    Returns the number of events scheduled.
    """
    with _session_scope() as session:
        repo = EventOutboxRepository(session)
        pending = repo.fetch_pending(limit=200)
        for event in pending:
            deliver_event.apply_async((event.id,))
        scheduled: int = len(pending)
        if scheduled:
            logger.info("Scheduled %s outbox events for delivery", scheduled)
        return scheduled


@celery_app.task(name="outbox.deliver_event", bind=True, max_retries=0)
def deliver_event(self: "Task[Any, Any]", event_id: str) -> Optional[str]:
    """
    Deliver a single outbox event.

    Retries are driven by the row's ``next_attempt_at`` (picked up again by
    ``dispatch_pending``) rather than Celery retries, so every failed attempt
    is counted exactly once.
    """
    session = SessionLocal()
    try:
        return process_outbox_event(session, event_id)
    except OutboxDeliveryError as exc:
        if exc.terminal:
            raise
        logger.info("Outbox event %s rescheduled by %ss (task %s)", event_id, exc.backoff, self.request.id)
        return None
    finally:
        session.close()
