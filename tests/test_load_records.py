# WORKFLOW: Tests for the tariff record storage adapter.
# Used by: CI, development testing
# Test scenarios:
# 1. New primary keys are inserted
# 2. Existing primary keys are updated in place with the newer record
# 3. Run summaries are stored
# 4. The merge-only information score is neither stored nor serialized

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base, ExtractionRun, TariffCode
from etl.load_records import record_run, upsert_final_records
from pipeline.models import FinalRecord, QualityReport, QualityState


@pytest.fixture
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


def test_insert_then_update(db):
    first = [
        FinalRecord(primary_key="0101210000", label="Live horses", numeric_rate=5.0),
        FinalRecord(primary_key="0102210000", label="Live cattle"),
    ]
    assert upsert_final_records(first, db, "tarif-2024.pdf") == (2, 0)

    second = [
        FinalRecord(primary_key="0101210000", label="Pure-bred breeding horses", numeric_rate=2.5, unit="u"),
        FinalRecord(primary_key="0303140000", label="Trout"),
    ]
    assert upsert_final_records(second, db, "tarif-2025.pdf") == (1, 1)

    horse = db.get(TariffCode, "0101210000")
    assert horse.label == "Pure-bred breeding horses"
    assert horse.numeric_rate == 2.5
    assert horse.unit == "u"
    assert horse.source == "tarif-2025.pdf"
    assert db.query(TariffCode).count() == 3


def test_information_score_is_not_stored(db):
    record = FinalRecord(primary_key="0101210000", label="Live horses", information_score=3)

    assert upsert_final_records([record], db, "tarif.pdf") == (1, 0)
    assert "information_score" not in TariffCode.__table__.columns.keys()
    assert "information_score" not in record.model_dump()
    assert "information_score" not in record.model_dump_json()


def test_empty_batch_is_noop(db):
    assert upsert_final_records([], db, "empty.pdf") == (0, 0)
    assert db.query(TariffCode).count() == 0


def test_record_run(db):
    report = QualityReport(units_total=4, units_processed=3, units_failed=1, records_final=12,
                           estimated_accuracy=0.75, processing_time_ms=1234.5, state=QualityState.PARTIAL)

    run = record_run(report, db, "tarif.pdf")

    stored = db.get(ExtractionRun, run.id)
    assert stored.state == "partial"
    assert stored.records_final == 12
