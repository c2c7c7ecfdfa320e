"""
Dashboard metrics router.

Wired to:
- MetricsService for cached-or-fresh snapshots and self-audit

Handlers are plain functions so FastAPI runs the synchronous pipeline in its
thread pool instead of on the event loop.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from bizmetrics.services import MetricsService, get_metrics_service
from bizmetrics.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()

CHECKSUM_HEADER = "X-Metrics-Checksum"


@router.get("/dashboard")
def get_dashboard_metrics(response: Response, service: MetricsService = Depends(get_metrics_service)):
    """
    Get dashboard metrics.
    Served from cache while fresh, recomputed otherwise.
    """
    snapshot = service.get_dashboard_metrics()
    response.headers[CHECKSUM_HEADER] = snapshot.checksum
    return {"success": True, "data": snapshot.model_dump(mode="json")}


@router.post("/refresh")
def refresh_metrics(response: Response, service: MetricsService = Depends(get_metrics_service)):
    """Force recomputation of dashboard metrics."""
    logger.info("metrics_refresh_requested")
    snapshot = service.refresh_metrics()
    response.headers[CHECKSUM_HEADER] = snapshot.checksum
    return {
        "success": True,
        "message": "Metrics refreshed successfully",
        "data": snapshot.model_dump(mode="json"),
    }


@router.get("/validate")
def validate_metrics(service: MetricsService = Depends(get_metrics_service)):
    """
    Compare a fresh calculation with stored metrics and business rules.
    Operator-facing diagnostic; nothing is cached or persisted.
    """
    report = service.validate_metrics()
    return {"success": True, "data": report.model_dump(mode="json")}


@router.get("/cross-validate")
def cross_validate_metrics(service: MetricsService = Depends(get_metrics_service)):
    """Recompute key figures straight from storage and diff against the latest snapshot."""
    result = service.cross_validate()
    return {"success": True, "data": result.model_dump(mode="json")}


@router.get("/history")
def get_metrics_history(
    hours: Optional[float] = Query(default=None, gt=0, le=24 * 7, description="Trailing window in hours"),
    service: MetricsService = Depends(get_metrics_service),
):
    """Snapshots recorded within the trailing window."""
    snapshots = service.recent_history(hours)
    return {
        "success": True,
        "data": {
            "count": len(snapshots),
            "snapshots": [s.model_dump(mode="json") for s in snapshots],
        },
    }


@router.get("/status")
def get_metrics_status(service: MetricsService = Depends(get_metrics_service)):
    """Cache, history and pipeline diagnostics."""
    return {"success": True, "data": service.status()}
