# WORKFLOW: Storage adapter for reconciled tariff records.
# Used by: API extraction router (persist=true), scripts, tests
# Functions:
# 1. upsert_final_records() - Insert or update one TariffCode row per primary key
# 2. record_run() - Store the quality summary of a persisted run
#
# Load flow: FinalRecords -> Existing rows by primary key -> Update or insert -> Commit
# A later record for the same primary key replaces the stored one.

import logging
from typing import List, Tuple

from sqlalchemy.orm import Session

from db.models import ExtractionRun, TariffCode
from pipeline.models import FinalRecord, QualityReport

logger = logging.getLogger(__name__)

RECORD_FIELDS = ("extended_key", "label", "unit", "numeric_rate", "notes")


def upsert_final_records(records: List[FinalRecord], db: Session, source: str) -> Tuple[int, int]:
    """
    Persist final records, keyed by primary key.

    Args:
        records: Reconciled records (unique primary keys)
        db: Database session
        source: Document name stored for provenance

    Returns:
        Tuple of (inserted, updated) row counts
    """
    if not records:
        return 0, 0

    inserted = 0
    updated = 0
    try:
        keys = [record.primary_key for record in records]
        existing = {
            row.primary_key: row
            for row in db.query(TariffCode).filter(TariffCode.primary_key.in_(keys)).all()
        }

        for record in records:
            values = {field: getattr(record, field) for field in RECORD_FIELDS}
            row = existing.get(record.primary_key)
            if row is None:
                db.add(TariffCode(primary_key=record.primary_key, source=source, **values))
                inserted += 1
                continue
            for field, value in values.items():
                setattr(row, field, value)
            row.source = source
            updated += 1

        db.commit()
        logger.info(f"Stored {len(records)} tariff codes from {source}: {inserted} inserted, {updated} updated")
        return inserted, updated

    except Exception as e:
        db.rollback()
        logger.error(f"Failed to store tariff codes from {source}: {e}")
        raise


def record_run(report: QualityReport, db: Session, source: str) -> ExtractionRun:
    """Store the quality summary of one run."""
    run = ExtractionRun(
        source=source,
        state=report.state.value,
        units_total=report.units_total,
        units_processed=report.units_processed,
        units_failed=report.units_failed,
        records_final=report.records_final,
        estimated_accuracy=report.estimated_accuracy,
        processing_time_ms=report.processing_time_ms,
    )
    try:
        db.add(run)
        db.commit()
        return run
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to record extraction run for {source}: {e}")
        raise
