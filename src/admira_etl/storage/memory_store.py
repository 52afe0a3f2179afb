"""In-memory store for transformed records and per-date ingestion markers.

The record list, the marker map and the last ingestion time are guarded by
one read/write lock: queries run concurrently, an append and its marker
updates are a single exclusive step. Nothing survives a restart.
"""
import logging
from datetime import date, datetime, timezone
from typing import Iterable, Optional, Protocol

from ..schemas.records import TransformedRecord, parse_record_date
from .rwlock import ReadWriteLock


logger = logging.getLogger(__name__)

_MISSING = object()


class RecordStore(Protocol):
    """Repository contract used by the ETL service."""

    def append(self, records: Iterable[TransformedRecord]) -> int: ...

    def query(
        self,
        date_from: date,
        date_to: date,
        filters: Optional[dict[str, str]] = None,
        limit: int = 0,
        offset: int = 0,
    ) -> tuple[list[TransformedRecord], int]: ...

    def was_ingested(self, record_date: str) -> bool: ...

    def last_ingestion_time(self) -> Optional[datetime]: ...

    def set_last_ingestion_time(self, timestamp: datetime) -> None: ...


def _matches_filters(record: TransformedRecord, filters: dict[str, str]) -> bool:
    for field, expected in filters.items():
        if getattr(record, field, _MISSING) != expected:
            return False
    return True


class InMemoryStore:
    """Concurrency-safe, date-filterable, paginated record repository."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._records: list[TransformedRecord] = []
        self._ingested_at: dict[str, datetime] = {}
        self._last_ingestion: Optional[datetime] = None

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._records)

    def append(self, records: Iterable[TransformedRecord]) -> int:
        """Append records and stamp an ingestion marker per distinct date.

        Re-ingesting a date appends again; duplicates are not rejected.

        Returns:
            Number of records appended
        """
        batch = list(records)
        now = datetime.now(timezone.utc)

        with self._lock.write_locked():
            self._records.extend(batch)
            for record in batch:
                self._ingested_at[record.date] = now

        logger.debug("Stored %s records", len(batch))
        return len(batch)

    def query(
        self,
        date_from: date,
        date_to: date,
        filters: Optional[dict[str, str]] = None,
        limit: int = 0,
        offset: int = 0,
    ) -> tuple[list[TransformedRecord], int]:
        """Return one page of records in [date_from, date_to].

        Args:
            date_from: Inclusive lower date bound
            date_to: Inclusive upper date bound
            filters: Field name -> exact value; unknown fields match nothing
            limit: Page size; <= 0 returns all remaining records
            offset: Records to skip; past the end yields an empty page

        Returns:
            (page in insertion order, total matching records before slicing)
        """
        filters = filters or {}

        with self._lock.read_locked():
            snapshot = list(self._records)

        matched: list[TransformedRecord] = []
        for record in snapshot:
            try:
                record_date = parse_record_date(record.date)
            except ValueError:
                continue
            if record_date < date_from or record_date > date_to:
                continue
            if not _matches_filters(record, filters):
                continue
            matched.append(record)

        total = len(matched)
        start = max(0, offset)
        if start >= total:
            return [], total

        end = total if limit <= 0 else min(start + limit, total)
        return matched[start:end], total

    def was_ingested(self, record_date: str) -> bool:
        with self._lock.read_locked():
            return record_date in self._ingested_at

    def ingested_dates(self) -> dict[str, datetime]:
        with self._lock.read_locked():
            return dict(self._ingested_at)

    def last_ingestion_time(self) -> Optional[datetime]:
        """Time of the last successful ingestion run, or None if never."""
        with self._lock.read_locked():
            return self._last_ingestion

    def set_last_ingestion_time(self, timestamp: datetime) -> None:
        with self._lock.write_locked():
            self._last_ingestion = timestamp
