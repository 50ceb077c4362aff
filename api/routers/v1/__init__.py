"""API routers for v1 endpoints."""

from api.routers.v1 import health, interpretability, predictions

__all__ = ["health", "interpretability", "predictions"]
