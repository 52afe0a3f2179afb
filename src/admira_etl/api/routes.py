"""FastAPI routes for ingestion, metric queries and export."""
import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..clients.exceptions import FetchClientError
from ..etl.exceptions import ConfigurationError, ExportError, PayloadError
from ..etl.service import ETLService
from ..schemas.records import TransformedRecord, parse_record_date


logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
DEFAULT_LIMIT = 100
MAX_LIMIT = 1000

router = APIRouter(prefix="/api/v1")
health_router = APIRouter(tags=["health"])


class IngestResponse(BaseModel):
    """Result of an ingestion run."""

    message: str
    since: Optional[str] = Field(None, description="Echo of the since filter")
    records: int = Field(..., description="Number of records stored")


class IngestStatusResponse(BaseModel):
    """Ingestion markers for idempotency checks."""

    last_ingestion_time: Optional[str] = Field(
        None, description="ISO timestamp of the last successful run, null if never"
    )
    date: Optional[str] = None
    ingested: Optional[bool] = Field(
        None, description="Whether records dated `date` were ingested"
    )


class MetricsResponse(BaseModel):
    """One page of transformed records."""

    data: list[TransformedRecord]
    count: int = Field(..., description="Records in this page")
    total: int = Field(..., description="Matching records before pagination")
    limit: int
    offset: int


class ExportResponse(BaseModel):
    """Result of an export run."""

    message: str
    date: str
    exported: int = Field(..., description="Consolidated records delivered")


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str


def get_service(request: Request) -> ETLService:
    """Resolve the ETL service attached to the application."""
    return request.app.state.etl_service


def _parse_date_param(name: str, value: str) -> date:
    try:
        return parse_record_date(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name} date format. Expected YYYY-MM-DD format",
        )


def _page_limit(limit: int) -> int:
    return DEFAULT_LIMIT if limit <= 0 else limit


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post(
    "/ingest/run",
    response_model=IngestResponse,
    tags=["ingestion"],
    summary="Fetch, transform and store ads + CRM data",
)
async def run_ingestion(
    since: Optional[str] = Query(None, description="Drop ad records before YYYY-MM-DD"),
    service: ETLService = Depends(get_service),
) -> IngestResponse:
    """Run one synchronous ingestion.

    Re-running for dates already ingested appends again; check
    /ingest/status first to avoid duplicates.
    """
    if since:
        _parse_date_param("since", since)

    logger.info("Starting ingestion: since=%s", since)

    try:
        stored = await service.run_ingestion(since)
    except ConfigurationError as exc:
        logger.error("Ingestion failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Ingestion failed: {exc}",
        )
    except (FetchClientError, PayloadError) as exc:
        logger.error("Ingestion failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Ingestion failed: {exc}",
        )

    return IngestResponse(
        message="Ingestion completed successfully",
        since=since,
        records=stored,
    )


@router.get(
    "/ingest/status",
    response_model=IngestStatusResponse,
    tags=["ingestion"],
    summary="Ingestion markers",
)
def ingestion_status(
    record_date: Optional[str] = Query(None, alias="date"),
    service: ETLService = Depends(get_service),
) -> IngestStatusResponse:
    if record_date:
        _parse_date_param("date", record_date)
    return IngestStatusResponse(**service.ingestion_status(record_date))


@router.get(
    "/metrics/channel",
    response_model=MetricsResponse,
    tags=["metrics"],
    summary="Per-record metrics for one channel",
)
def channel_metrics(
    date_from: str = Query(..., alias="from"),
    date_to: str = Query(..., alias="to"),
    channel: str = Query(...),
    limit: int = Query(DEFAULT_LIMIT, le=MAX_LIMIT),
    offset: int = Query(0, ge=0),
    service: ETLService = Depends(get_service),
) -> MetricsResponse:
    start = _parse_date_param("from", date_from)
    end = _parse_date_param("to", date_to)
    limit = _page_limit(limit)

    records, total = service.query_channel(start, end, channel, limit, offset)
    return MetricsResponse(
        data=records, count=len(records), total=total, limit=limit, offset=offset
    )


@router.get(
    "/metrics/funnel",
    response_model=MetricsResponse,
    tags=["metrics"],
    summary="Funnel metrics for a date range",
    description=(
        "utm_campaign is required but not applied: stored records carry no "
        "UTM fields, so results are filtered by date range only."
    ),
)
def funnel_metrics(
    date_from: str = Query(..., alias="from"),
    date_to: str = Query(..., alias="to"),
    utm_campaign: str = Query(...),
    limit: int = Query(DEFAULT_LIMIT, le=MAX_LIMIT),
    offset: int = Query(0, ge=0),
    service: ETLService = Depends(get_service),
) -> MetricsResponse:
    start = _parse_date_param("from", date_from)
    end = _parse_date_param("to", date_to)
    limit = _page_limit(limit)

    records, total = service.query_funnel(start, end, utm_campaign, limit, offset)
    return MetricsResponse(
        data=records, count=len(records), total=total, limit=limit, offset=offset
    )


@router.post(
    "/export/run",
    response_model=ExportResponse,
    tags=["export"],
    summary="Consolidate one day and deliver it to the sink",
)
async def run_export(
    export_date: str = Query(..., alias="date"),
    service: ETLService = Depends(get_service),
) -> ExportResponse:
    """Sign and deliver consolidated records.

    A failed delivery aborts the rest of the run; records delivered before
    the failure are not rolled back.
    """
    _parse_date_param("date", export_date)

    logger.info("Starting data export: date=%s", export_date)

    try:
        exported = await service.run_export(export_date)
    except ConfigurationError as exc:
        logger.error("Export failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Export failed: {exc}",
        )
    except ExportError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Export failed: {exc}",
        )

    return ExportResponse(
        message="Export completed successfully",
        date=export_date,
        exported=exported,
    )


@health_router.get("/healthz", response_model=HealthResponse)
def health_check() -> HealthResponse:
    return HealthResponse(status="healthy", timestamp=_now_iso(), version=API_VERSION)


@health_router.get("/readyz", response_model=HealthResponse)
def readiness_check(service: ETLService = Depends(get_service)):
    """Ready once both source URLs are configured."""
    settings = service.settings
    if not settings.ads_api_url or not settings.crm_api_url:
        body = HealthResponse(
            status="unhealthy", timestamp=_now_iso(), version=API_VERSION
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(),
        )
    return HealthResponse(status="ready", timestamp=_now_iso(), version=API_VERSION)
