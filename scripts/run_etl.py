#!/usr/bin/env python3
"""CLI entry point for a one-shot ingestion (and optional export).

The store is in-memory, so ingestion and export must run in the same
process to see each other's data.

Usage:
    # Ingest everything the sources return
    PYTHONPATH=. python scripts/run_etl.py

    # Ingest from a date onward
    PYTHONPATH=. python scripts/run_etl.py --since 2025-01-01

    # Ingest, then export one consolidated day to the sink
    PYTHONPATH=. python scripts/run_etl.py --since 2025-01-01 --export-date 2025-01-02
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.admira_etl.config import Settings
from src.admira_etl.etl.service import ETLService
from src.admira_etl.storage.memory_store import InMemoryStore


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Admira ads/CRM ETL run")
    parser.add_argument(
        "--since",
        type=str,
        help="Drop ad records dated before this day (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--export-date",
        type=str,
        help="After ingestion, export this day (YYYY-MM-DD) to SINK_URL",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    service = ETLService(settings=Settings.from_env(), store=InMemoryStore())

    stored = await service.run_ingestion(args.since)
    print(f"Ingested {stored} records")

    if args.export_date:
        exported = await service.run_export(args.export_date)
        print(f"Exported {exported} consolidated records for {args.export_date}")

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
