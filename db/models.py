# WORKFLOW: Database models for reconciled tariff records.
# Used by: Storage loader (etl/load_records.py), API extraction router, tests
# Models represent:
# 1. tariff_codes - One row per 10-digit primary key, last writer wins
# 2. extraction_runs - One row per persisted extraction run with its quality summary
#
# Data flow: Document -> Pipeline -> FinalRecords -> Loader -> tariff_codes

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Index, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class TariffCode(Base):
    __tablename__ = "tariff_codes"

    primary_key = Column(String(10), primary_key=True, index=True)
    extended_key = Column(String(14), nullable=True)
    label = Column(Text, nullable=False)
    unit = Column(String(20), nullable=True)
    numeric_rate = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    source = Column(String(255), nullable=True)  # Document the record was last extracted from
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_tariff_extended_key', 'extended_key'),
        Index('idx_tariff_source', 'source'),
    )


class ExtractionRun(Base):
    __tablename__ = "extraction_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(255), nullable=False)
    state = Column(String(20), nullable=False)
    units_total = Column(Integer, nullable=False)
    units_processed = Column(Integer, nullable=False)
    units_failed = Column(Integer, nullable=False)
    records_final = Column(Integer, nullable=False)
    estimated_accuracy = Column(Float, nullable=False)
    processing_time_ms = Column(Float, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
