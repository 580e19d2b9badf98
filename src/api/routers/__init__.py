"""API routers."""

from api.routers import catalog, reconciliation

__all__ = ["catalog", "reconciliation"]
