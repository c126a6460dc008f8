# WORKFLOW: Pydantic response schemas for the extraction endpoint.
# Used by: API extraction router, tests
# Schemas include:
# 1. PersistSummary - Rows inserted/updated when persist=true
# 2. ExtractionResponse - Final records, quality report, errors and warnings
#
# Response flow: PipelineResult -> ExtractionResponse -> JSON

from typing import List, Optional

from pydantic import BaseModel, Field

from pipeline.models import FinalRecord, PipelineResult, QualityReport


class PersistSummary(BaseModel):
    inserted: int = 0
    updated: int = 0


class ExtractionResponse(BaseModel):
    success: bool
    filename: str
    records: List[FinalRecord] = Field(default_factory=list)
    quality_report: QualityReport
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    combined_text: Optional[str] = None
    persisted: Optional[PersistSummary] = None

    @classmethod
    def from_result(cls, result: PipelineResult, filename: str, persisted: Optional[PersistSummary] = None):
        return cls(
            success=result.success,
            filename=filename,
            records=result.final_records,
            quality_report=result.quality_report,
            errors=result.errors,
            warnings=result.warnings,
            combined_text=result.combined_text,
            persisted=persisted,
        )
