"""Liveness of the planning store and the report cache, plus the metrics snapshot."""

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from planpulse.api.dependencies import get_db_session, get_report_cache
from planpulse.api.metrics import metrics
from planpulse.api.models import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


def _database_status(session: Session) -> dict:
    try:
        team_count = session.execute(text("SELECT COUNT(*) FROM teams")).scalar_one()
    except SQLAlchemyError as exc:
        logger.error("Planning database unreachable: %s", exc)
        return {"status": "unhealthy", "detail": str(exc)}
    return {"status": "healthy", "detail": f"Connected ({team_count} teams)"}


def _cache_status(cache) -> dict:
    stats = cache.stats()
    # memory_usage is the fraction of max_size in use
    if stats["memory_usage"] > 1.0:
        return {"status": "degraded", "detail": "Over size bound", **stats}
    return {"status": "healthy", "detail": f"{stats['entries']} entries", **stats}


@router.get("/", response_model=HealthResponse)
def health_check(
    session: Session = Depends(get_db_session),
    cache=Depends(get_report_cache),
):
    """
    Report database and report-cache status.

    An unreachable database makes the service unhealthy (503). An oversized
    cache only degrades it, since reports are still served.
    """
    components = {
        "database": _database_status(session),
        "report_cache": _cache_status(cache),
    }
    states = {component["status"] for component in components.values()}
    if "unhealthy" in states:
        status = "unhealthy"
    elif "degraded" in states:
        status = "degraded"
    else:
        status = "healthy"

    body = HealthResponse(
        status=status,
        components=components,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    if status == "unhealthy":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body


@router.get("/metrics")
def get_metrics():
    return metrics.get_snapshot()
