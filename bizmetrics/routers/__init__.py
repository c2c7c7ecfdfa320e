"""API routers for all endpoints."""

from bizmetrics.routers import metrics

__all__ = ["metrics"]
