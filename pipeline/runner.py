# WORKFLOW: Single entry point of the extraction-and-reconciliation pipeline.
# Used by: API extraction router, scripts, tests
# Functions:
# 1. run_pipeline() - Text document or page images -> final records + quality report + errors
# 2. run_table_import() - Spreadsheet file -> mapped rows (and LLM fallback) -> same reconcile stage
#
# Run flow: Request -> Chunker (text) | Page pipeline (images) -> Orchestrator dispatch
#           -> Validate -> Merge -> QualityReport -> PipelineResult
# Fatal errors become a failed PipelineResult (success=False, fatal=True) carrying the partial
# report; every other failure is absorbed and listed in errors[].

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from etl.chunker import split_text
from etl.ingest_table import load_table
from pipeline.errors import FatalExtractionError
from pipeline.models import (
    ErrorReason,
    ExtractionOptions,
    ExtractionOutcome,
    PipelineRequest,
    PipelineResult,
    SourceRef,
)
from pipeline.orchestrator import ExtractionOrchestrator, ProgressCallback, deadline_errors
from pipeline.pages import PagePipeline
from services.extraction_client import create_extraction_client

logger = logging.getLogger(__name__)


async def run_pipeline(
    request: PipelineRequest,
    client=None,
    progress_callback: Optional[ProgressCallback] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PipelineResult:
    """
    Run the full extraction pipeline for one document.

    Args:
        request: Document text or page images, filename and run options
        client: Extraction client (defaults to the Ollama-backed client)
        progress_callback: Called after every batch with a ProgressEvent
        sleep: Awaitable sleep used for backoff and batch delays

    Returns:
        PipelineResult; success=False only when the run was fatally aborted
    """
    options = request.options
    orchestrator = ExtractionOrchestrator(
        client or create_extraction_client(),
        options=options,
        progress_callback=progress_callback,
        sleep=sleep,
    )
    started = time.perf_counter()
    combined_text = None

    try:
        if request.page_images is not None:
            logger.info(f"Starting page extraction for {request.filename}: {len(request.page_images)} pages")
            page_run = await PagePipeline(orchestrator).process_pages(
                request.page_images, options.max_pages, document_id=request.filename
            )
            errors: List[str] = []
            if page_run.pages_over_cap:
                errors.append(
                    f"{page_run.pages_over_cap} of {page_run.pages_total} pages not processed: "
                    f"max_pages is {options.max_pages}"
                )
            errors.extend(deadline_errors(page_run.pages_not_dispatched))
            result = orchestrator.reconcile(
                page_run.outcomes,
                started,
                units_total=page_run.pages_total,
                units_skipped=page_run.pages_skipped,
                extra_errors=errors,
            )
            combined_text = page_run.combined_text
        else:
            chunks = split_text(
                request.document_content,
                options.max_chunk_size,
                options.overlap,
                document_id=request.filename,
            )
            logger.info(f"Starting text extraction for {request.filename}: {len(chunks)} chunks")
            outcomes, skipped = await orchestrator.dispatch(chunks)
            result = orchestrator.reconcile(
                outcomes,
                started,
                units_total=len(chunks),
                units_skipped=skipped,
                extra_errors=deadline_errors(skipped),
            )

    except FatalExtractionError as e:
        logger.error(f"Extraction of {request.filename} aborted: {e}")
        return PipelineResult(success=False, fatal=True, quality_report=e.report, errors=[str(e)])

    logger.info(
        f"Extraction of {request.filename} finished: {len(result.records)} records, "
        f"accuracy estimate {result.report.estimated_accuracy}"
    )
    return PipelineResult(
        success=True,
        final_records=result.records,
        quality_report=result.report,
        errors=result.errors,
        warnings=result.warnings,
        combined_text=combined_text,
    )


async def run_table_import(
    path: str,
    options: Optional[ExtractionOptions] = None,
    client=None,
    progress_callback: Optional[ProgressCallback] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PipelineResult:
    """
    Import a spreadsheet (CSV, XLSX or ZIP of spreadsheets).

    Sheets with recognisable columns map straight to candidates; other sheets
    are rendered as text and extracted through the LLM path. Both feed the
    same validation and merge stage. A file that cannot be parsed counts as
    one failed unit with reason PARSE_FAILED.

    Args:
        path: Spreadsheet path
        options: Run options (defaults from settings)
        client: Extraction client, only used for sheets that need extraction
        progress_callback: Called after every LLM batch
        sleep: Awaitable sleep used for backoff and batch delays

    Returns:
        PipelineResult
    """
    options = options or ExtractionOptions.from_settings()
    document_id = Path(path).name
    sheets = load_table(path, document_id=document_id)
    started = time.perf_counter()

    orchestrator = None
    outcomes: List[ExtractionOutcome] = []
    units_total = 0
    skipped = 0

    try:
        for sheet in sheets:
            ref = SourceRef(document_id=f"{document_id}:{sheet.key}", unit_number=sheet.sheet_number)
            if sheet.error is not None:
                units_total += 1
                outcomes.append(
                    ExtractionOutcome(
                        unit=ref,
                        success=False,
                        error_reason=ErrorReason.PARSE_FAILED,
                        error_message=sheet.error,
                    )
                )
                continue

            if not sheet.needs_extraction:
                units_total += 1
                outcomes.append(ExtractionOutcome(unit=ref, success=True, candidates=sheet.candidates))
                continue

            if orchestrator is None:
                orchestrator = ExtractionOrchestrator(
                    client or create_extraction_client(),
                    options=options,
                    progress_callback=progress_callback,
                    sleep=sleep,
                )
            chunks = split_text(
                sheet.text,
                options.max_chunk_size,
                options.overlap,
                document_id=f"{document_id}:{sheet.key}",
            )
            units_total += len(chunks)
            sheet_outcomes, sheet_skipped = await orchestrator.dispatch(chunks)
            outcomes.extend(sheet_outcomes)
            skipped += sheet_skipped

    except FatalExtractionError as e:
        logger.error(f"Import of {document_id} aborted: {e}")
        return PipelineResult(success=False, fatal=True, quality_report=e.report, errors=[str(e)])

    reconciler = orchestrator or ExtractionOrchestrator(client, options=options, sleep=sleep)
    result = reconciler.reconcile(
        outcomes,
        started,
        units_total=units_total,
        units_skipped=skipped,
        extra_errors=deadline_errors(skipped),
    )
    logger.info(f"Import of {document_id} finished: {len(result.records)} records from {len(sheets)} sheets")
    return PipelineResult(
        success=True,
        final_records=result.records,
        quality_report=result.report,
        errors=result.errors,
        warnings=result.warnings,
    )
