"""Admira ETL FastAPI application entry point."""
import logging
import os
from typing import Optional

from fastapi import FastAPI

from .api.routes import API_VERSION, health_router
from .api.routes import router as api_router
from .config import Settings
from .etl.service import ETLService
from .storage.memory_store import InMemoryStore


# Configure logging (unknown LOG_LEVEL values fall back to INFO)
_log_level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
logging.basicConfig(
    level=_log_level if isinstance(_log_level, int) else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def create_app(service: Optional[ETLService] = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        service: Optional pre-built ETL service; defaults to one built from
            environment settings over a fresh in-memory store
    """
    if service is None:
        service = ETLService(settings=Settings.from_env(), store=InMemoryStore())

    app = FastAPI(
        title="Admira ETL API",
        version=API_VERSION,
        description="Ads/CRM UTM reconciliation, funnel metrics and signed export",
    )
    app.state.etl_service = service

    app.include_router(health_router)
    app.include_router(api_router)

    return app


app = create_app()
