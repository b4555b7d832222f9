# backend/hustle/routes/health.py
"""
Health and metrics endpoints.

Both are public: ``/health`` for liveness probes and ``/metrics`` for the
Prometheus scraper.
"""

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..core.constants import API_TITLE
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..schemas.base import envelope

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(response: Response, db: Session = Depends(get_db)) -> dict:
    """Liveness plus a cheap database round trip."""
    response.headers["Cache-Control"] = "no-store"
    try:
        db.execute(text("SELECT 1"))
        db_status = True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db_status = False

    return envelope(
        {
            "service": API_TITLE,
            "healthy": db_status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {"database": db_status},
        },
        message="healthy" if db_status else "degraded",
    )


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """Prometheus exposition of the service metrics."""
    return Response(content=prometheus_metrics.get_metrics(), media_type=prometheus_metrics.get_content_type())
