#!/usr/bin/env python3
"""
Bureau Batch Generation Script
Generates a reporting batch from the command line (cron or manual re-run).

Usage:
    python -m scripts.generate_batch [--month YYYY-MM] [--include-unverified]
                                     [--all-tenants] [--format fixed|csv|json]

Example:
    python -m scripts.generate_batch --month 2023-11
"""
import argparse
import logging
import sys
from typing import List, Optional

from sqlalchemy.orm import Session

from bureau_export.config import Settings
from bureau_export.database import SessionLocal, init_db
from bureau_export.exceptions import BureauExportError
from bureau_export.models.db_models import BatchStatus, ExportFormat
from bureau_export.models.reporting import BatchOptions
from bureau_export.services.reporting import BatchOrchestrator, SqlSnapshotSource
from bureau_export.services.reporting.periods import previous_month

logger = logging.getLogger("scripts.generate_batch")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a bureau reporting batch")
    parser.add_argument("--month", default=None, help="YYYY-MM (default: last month)")
    parser.add_argument("--include-unverified", action="store_true",
                        help="Include payments that have not been verified")
    parser.add_argument("--all-tenants", action="store_true",
                        help="Do not restrict to tenants who consented to reporting")
    parser.add_argument("--format", choices=[f.value for f in ExportFormat],
                        default=ExportFormat.FIXED.value)
    parser.add_argument("--actor", default="SYSTEM_CLI")
    return parser.parse_args(argv)


def generate(db: Session, settings: Settings, args: argparse.Namespace) -> int:
    month = args.month or previous_month()
    options = BatchOptions(
        include_unverified=args.include_unverified,
        only_consented=not args.all_tenants,
        format=ExportFormat(args.format),
    )
    orchestrator = BatchOrchestrator(db, settings, SqlSnapshotSource(db))
    try:
        batch = orchestrator.create(month, options, args.actor)
    except BureauExportError as exc:
        print(f"Error: {exc}")
        return 1

    try:
        orchestrator.run(batch)
    except Exception:
        logger.exception("Batch %s generation failed", batch.id)
    if batch.status != BatchStatus.READY:
        print(f"Batch {batch.id} failed: {batch.failed_reason}")
        return 1

    print(f"Batch {batch.id} ready for {month}: {batch.record_count} records")
    print(f"SHA-256: {batch.checksum_sha256}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = Settings.from_env().validate()
    logging.basicConfig(level=settings.log_level)
    init_db()

    db: Session = SessionLocal()
    try:
        return generate(db, settings, args)
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
