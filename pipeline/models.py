# WORKFLOW: Data model for the extraction-and-reconciliation pipeline.
# Used by: Chunker, extraction client, orchestrator, page pipeline, merge, quality, API
# Models include:
# 1. RawChunk - One unit of extraction work (text slice or page image)
# 2. CandidateRecord - Unvalidated entity proposed by the extraction model
# 3. FinalRecord - Validated, normalized, deduplicated tariff code
# 4. ExtractionOutcome - Per-unit result (success, candidates, error, retries)
# 5. QualityReport - Aggregate run metrics
# 6. ExtractionOptions / PipelineRequest / PipelineResult - Entry point contract
#
# Lifecycle: RawChunk -> ExtractionOutcome(CandidateRecord*) -> FinalRecord* + QualityReport

from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field, model_validator

from core.config import settings


class ErrorReason(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    AUTH_ERROR = "AUTH_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    RENDER_FAILED = "RENDER_FAILED"
    PARSE_FAILED = "PARSE_FAILED"


class UnitKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"


class QualityState(str, Enum):
    COMPLETE = "complete"    # every dispatched unit succeeded and records were produced
    PARTIAL = "partial"      # some units failed or were skipped
    EMPTY = "empty"          # units succeeded but nothing survived validation/merge
    FAILED = "failed"        # no unit succeeded


class SourceRef(BaseModel):
    """Provenance of a unit: document identifier plus chunk or page number."""

    document_id: str
    unit_number: int = Field(..., ge=1)
    kind: UnitKind = UnitKind.TEXT

    class Config:
        frozen = True

    def label(self) -> str:
        prefix = "page" if self.kind == UnitKind.IMAGE else "chunk"
        return f"{self.document_id}#{prefix}-{self.unit_number}"


class RawChunk(BaseModel):
    """A contiguous slice of document text, or one page image."""

    index: int = Field(..., ge=0)
    content: Union[str, bytes]
    kind: UnitKind = UnitKind.TEXT
    source_ref: SourceRef
    start_offset: Optional[int] = None
    end_offset: Optional[int] = None

    class Config:
        frozen = True

    @property
    def content_length(self) -> int:
        return len(self.content)


class CandidateRecord(BaseModel):
    """
    One entity proposed by the extraction model for a unit.

    Fields are kept loosely typed on purpose: shape and presence checks happen
    once, in the record validator.
    """

    raw_code: Optional[str] = None
    label: Optional[str] = None
    unit: Optional[str] = None
    numeric_rate: Optional[Union[float, str]] = None
    notes: Optional[str] = None
    parent_code: Optional[str] = None
    origin_chunk: Optional[SourceRef] = None

    class Config:
        frozen = True


class FinalRecord(BaseModel):
    primary_key: str = Field(..., pattern=r"^[0-9]{10}$")
    extended_key: Optional[str] = Field(None, pattern=r"^[0-9]{14}$")
    label: str
    unit: Optional[str] = None
    numeric_rate: Optional[float] = None
    notes: Optional[str] = None
    # Merge-only: decides which duplicate wins, never stored or serialized
    information_score: int = Field(0, exclude=True)
    origin: Optional[SourceRef] = None

    class Config:
        frozen = True

    @property
    def chapter(self) -> str:
        return self.primary_key[:2]


class ExtractionOutcome(BaseModel):
    unit: SourceRef
    success: bool
    candidates: List[CandidateRecord] = Field(default_factory=list)
    error_reason: Optional[ErrorReason] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    low_yield_retried: bool = False
    text: Optional[str] = None
    processing_time_ms: float = 0.0

    class Config:
        frozen = True

    def describe_error(self) -> str:
        reason = self.error_reason.value if self.error_reason else "UNKNOWN"
        detail = f": {self.error_message}" if self.error_message else ""
        return f"{self.unit.label()} failed with {reason}{detail}"


class QualityReport(BaseModel):
    units_total: int = 0
    units_processed: int = 0
    units_failed: int = 0
    units_skipped: int = 0
    low_yield_units: int = 0
    records_extracted: int = 0
    records_rejected: int = 0
    records_final: int = 0
    records_per_unit: float = 0.0
    coverage_percent: float = 0.0
    estimated_accuracy: float = Field(0.0, ge=0.0, le=1.0)
    processing_time_ms: float = 0.0
    state: QualityState = QualityState.FAILED

    class Config:
        frozen = True


class ProgressEvent(BaseModel):
    batch_index: int
    units_done: int
    units_total: int
    candidates_so_far: int


class PageImage(BaseModel):
    """One rendered page handed over by the page rendering collaborator."""

    page_number: int = Field(..., ge=1)
    data: Optional[Union[bytes, str]] = None
    width: Optional[int] = None
    height: Optional[int] = None
    error: Optional[str] = None


class ExtractionOptions(BaseModel):
    """Per-run options; anything not supplied falls back to the settings defaults."""

    max_chunk_size: int = Field(default_factory=lambda: settings.max_chunk_size, gt=0)
    overlap: int = Field(default_factory=lambda: settings.chunk_overlap, ge=0)
    concurrency: int = Field(default_factory=lambda: settings.concurrency, ge=1)
    max_retries: int = Field(default_factory=lambda: settings.max_retries, ge=0)
    max_pages: int = Field(default_factory=lambda: settings.max_pages, ge=1)
    backoff_base_seconds: float = Field(default_factory=lambda: settings.backoff_base_seconds, ge=0)
    batch_delay_seconds: float = Field(default_factory=lambda: settings.batch_delay_seconds, ge=0)
    call_timeout_seconds: float = Field(default_factory=lambda: settings.call_timeout_seconds, gt=0)
    run_timeout_seconds: Optional[float] = Field(default_factory=lambda: settings.run_timeout_seconds)
    low_yield_min_candidates: int = Field(default_factory=lambda: settings.low_yield_min_candidates, ge=0)
    low_yield_min_content: int = Field(default_factory=lambda: settings.low_yield_min_content, ge=0)

    @model_validator(mode="after")
    def check_overlap(self):
        if self.overlap >= self.max_chunk_size:
            raise ValueError("overlap must be strictly less than max_chunk_size")
        return self

    @classmethod
    def from_settings(cls, **overrides) -> "ExtractionOptions":
        return cls(**{key: value for key, value in overrides.items() if value is not None})


class PipelineRequest(BaseModel):
    document_content: Optional[str] = None
    page_images: Optional[List[PageImage]] = None
    filename: str = "document"
    options: ExtractionOptions = Field(default_factory=ExtractionOptions)

    @model_validator(mode="after")
    def check_single_input(self):
        has_text = self.document_content is not None
        has_pages = self.page_images is not None
        if has_text == has_pages:
            raise ValueError("Provide exactly one of document_content or page_images")
        return self


class PipelineResult(BaseModel):
    success: bool
    fatal: bool = False
    final_records: List[FinalRecord] = Field(default_factory=list)
    quality_report: QualityReport
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    combined_text: Optional[str] = None
