"""ETL service: fetch, transform, store, query and export.

Each operation makes its own Store calls. Two ingestions covering the same
dates are not serialized here; both append and duplicates accumulate.
Callers that need exactly-once ingestion per date must check
``was_ingested`` and serialize themselves.
"""
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import AsyncIterator, Optional

import aiohttp

from ..clients.exceptions import FetchClientError
from ..clients.fetch_client import FetchClient
from ..config import Settings
from ..schemas.records import TransformedRecord, parse_record_date
from ..storage.memory_store import InMemoryStore
from .consolidate import consolidate
from .exceptions import ConfigurationError
from .exporter import Exporter, RecordSigner
from .transform import transform_payloads


logger = logging.getLogger(__name__)


def _redact_text(text: str, secrets: list[Optional[str]]) -> str:
    if not text:
        return text
    redacted = text
    for secret in secrets:
        if secret:
            redacted = redacted.replace(secret, "[REDACTED]")
    return redacted


class ETLService:
    """Orchestrates ingestion, metric queries and signed export."""

    def __init__(
        self,
        settings: Settings,
        store: InMemoryStore,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize ETL service.

        Args:
            settings: Runtime settings
            store: Shared record store
            session: Optional injected aiohttp session; when omitted each
                operation opens and closes its own session
        """
        self.settings = settings
        self.store = store
        self._session = session

    def _redact_error(self, text: str) -> str:
        return _redact_text(text, [self.settings.sink_secret])

    @asynccontextmanager
    async def _fetch_client(self) -> AsyncIterator[FetchClient]:
        if self._session is not None:
            yield self._build_client(self._session)
            return

        timeout = aiohttp.ClientTimeout(total=self.settings.http_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            yield self._build_client(session)

    def _build_client(self, session: aiohttp.ClientSession) -> FetchClient:
        return FetchClient(
            session=session,
            timeout=self.settings.http_timeout,
            max_retries=self.settings.max_retries,
            retry_delay=self.settings.retry_delay,
        )

    async def run_ingestion(self, since: Optional[str] = None) -> int:
        """Fetch ads and CRM data, transform it and append it to the store.

        Args:
            since: Optional YYYY-MM-DD floor; older ad records are dropped

        Returns:
            Number of records stored

        Raises:
            ValueError: If ``since`` is not a valid date
            ConfigurationError: If a source URL is missing
            FetchClientError: If a source cannot be fetched
            PayloadError: If a source payload is unprocessable
        """
        since_date: Optional[date] = None
        if since:
            try:
                since_date = parse_record_date(since)
            except ValueError as exc:
                raise ValueError(f"invalid since date format: {since!r}") from exc

        if not self.settings.ads_api_url:
            raise ConfigurationError("ads API URL")
        if not self.settings.crm_api_url:
            raise ConfigurationError("crm API URL")

        logger.info("Starting data ingestion: since=%s", since or "-")

        try:
            async with self._fetch_client() as client:
                ads_raw = await client.get_json(self.settings.ads_api_url)
                crm_raw = await client.get_json(self.settings.crm_api_url)
        except FetchClientError as exc:
            logger.error("Failed to fetch source data: %s", exc)
            raise

        records = transform_payloads(
            ads_raw,
            crm_raw,
            since=since_date,
            lead_conversion_rate=self.settings.lead_conversion_rate,
        )

        dates = sorted({record.date for record in records})
        reingested = [d for d in dates if self.store.was_ingested(d)]
        if reingested:
            logger.warning(
                "Re-ingesting already ingested dates %s; records will be appended again",
                reingested,
            )

        stored = self.store.append(records)
        self.store.set_last_ingestion_time(datetime.now(timezone.utc))

        logger.info(
            "Data ingestion completed: records=%s dates=%s", stored, len(dates)
        )
        return stored

    def query_channel(
        self,
        date_from: date,
        date_to: date,
        channel: str,
        limit: int = 0,
        offset: int = 0,
    ) -> tuple[list[TransformedRecord], int]:
        """Records for one channel within an inclusive date range."""
        return self.store.query(
            date_from, date_to, {"channel": channel}, limit=limit, offset=offset
        )

    def query_funnel(
        self,
        date_from: date,
        date_to: date,
        utm_campaign: str,
        limit: int = 0,
        offset: int = 0,
    ) -> tuple[list[TransformedRecord], int]:
        """Funnel records within an inclusive date range.

        Stored records carry no UTM fields, so ``utm_campaign`` is accepted
        but not applied: the result is filtered by date range only.
        """
        logger.debug("Funnel query utm_campaign=%s (not applied)", utm_campaign)
        return self.store.query(date_from, date_to, {}, limit=limit, offset=offset)

    async def run_export(self, export_date: str) -> int:
        """Consolidate one day of records and deliver them to the sink.

        Returns:
            Number of consolidated records delivered

        Raises:
            ConfigurationError: If the sink URL or secret is missing
            ValueError: If ``export_date`` is not a valid date
            ExportError: On the first failed delivery; earlier records
                were already delivered
        """
        if not self.settings.sink_url:
            raise ConfigurationError("sink URL")
        if not self.settings.sink_secret:
            raise ConfigurationError("sink secret")

        try:
            day = parse_record_date(export_date)
        except ValueError as exc:
            raise ValueError(f"invalid date format: {export_date!r}") from exc

        records, _ = self.store.query(day, day)
        consolidated = consolidate(records)

        logger.info(
            "Starting data export: date=%s records=%s consolidated=%s",
            export_date,
            len(records),
            len(consolidated),
        )

        signer = RecordSigner(self.settings.sink_secret)
        try:
            async with self._fetch_client() as client:
                exporter = Exporter(client, self.settings.sink_url, signer)
                exported = await exporter.export_all(consolidated)
        except Exception as exc:
            logger.error(
                "Data export failed for %s: %s",
                export_date,
                self._redact_error(str(exc)),
            )
            raise

        logger.info("Data export completed: date=%s exported=%s", export_date, exported)
        return exported

    def ingestion_status(self, record_date: Optional[str] = None) -> dict:
        """Last ingestion time and, optionally, whether a date was ingested."""
        last = self.store.last_ingestion_time()
        status = {
            "last_ingestion_time": last.isoformat() if last else None,
            "date": record_date,
            "ingested": None,
        }
        if record_date:
            status["ingested"] = self.store.was_ingested(record_date)
        return status
