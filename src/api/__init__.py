"""HTTP API for catalog reconciliation."""

from api.app import app

__all__ = ["app"]
