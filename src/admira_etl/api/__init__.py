"""REST API layer for ingestion, metrics and export."""
from .routes import get_service, health_router, router

__all__ = ["get_service", "health_router", "router"]
