# WORKFLOW: Pydantic request schemas for API input validation.
# Used by: FastAPI extraction endpoint for request validation and documentation
# Schemas include:
# 1. PageImageIn - One rendered page as base64, or the renderer's error for it
# 2. ExtractionOptionsIn - Per-run overrides of the extraction defaults
# 3. ExtractionRequest - For /extract: document text or page images, plus options
#
# Validation flow: HTTP request -> Pydantic validation -> PipelineRequest -> Pipeline runner

import base64
import binascii
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from pipeline.models import ExtractionOptions, PageImage, PipelineRequest


class PageImageIn(BaseModel):
    """One rendered page. image_base64 is absent when rendering failed."""
    page_number: int = Field(..., ge=1, description="1-based page number")
    image_base64: Optional[str] = Field(None, description="Base64-encoded page image (PNG/JPEG)")
    width: Optional[int] = Field(None, ge=1)
    height: Optional[int] = Field(None, ge=1)
    error: Optional[str] = Field(None, description="Rendering error for this page")

    @field_validator('image_base64')
    @classmethod
    def validate_base64(cls, v):
        if v is None:
            return v
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError('image_base64 must be valid base64')
        return v


class ExtractionOptionsIn(BaseModel):
    """Per-run overrides; unset fields use the service defaults."""
    max_chunk_size: Optional[int] = Field(None, gt=0)
    overlap: Optional[int] = Field(None, ge=0)
    concurrency: Optional[int] = Field(None, ge=1, le=32)
    max_retries: Optional[int] = Field(None, ge=0, le=10)
    max_pages: Optional[int] = Field(None, ge=1)
    batch_delay_seconds: Optional[float] = Field(None, ge=0)
    run_timeout_seconds: Optional[float] = Field(None, gt=0)


class ExtractionRequest(BaseModel):
    """Request schema for the extraction endpoint."""
    document_content: Optional[str] = Field(None, description="Extracted document text")
    page_images: Optional[List[PageImageIn]] = Field(None, description="Rendered pages of a scanned document")
    filename: str = Field("document", min_length=1, max_length=255, description="Source name for provenance")
    options: ExtractionOptionsIn = Field(default_factory=ExtractionOptionsIn)
    persist: bool = Field(False, description="Store final records in the tariff table")

    @model_validator(mode="after")
    def check_single_input(self):
        if (self.document_content is None) == (self.page_images is None):
            raise ValueError('Provide exactly one of document_content or page_images')
        return self

    def to_pipeline_request(self) -> PipelineRequest:
        """Build the pipeline request; raises ValueError on inconsistent options."""
        options = ExtractionOptions.from_settings(**self.options.model_dump())
        pages = None
        if self.page_images is not None:
            pages = [
                PageImage(
                    page_number=page.page_number,
                    data=page.image_base64,
                    width=page.width,
                    height=page.height,
                    error=page.error,
                )
                for page in self.page_images
            ]
        return PipelineRequest(
            document_content=self.document_content,
            page_images=pages,
            filename=self.filename,
            options=options,
        )
