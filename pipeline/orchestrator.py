# WORKFLOW: Extraction orchestrator: dispatch -> retry -> validate -> merge -> report.
# Used by: Pipeline runner (text chunks), page pipeline (page images), tests
# Pipeline steps:
# 1. dispatch() - Run units through the extraction client in bounded concurrent batches
# 2. extract_unit() - Per-unit retry policy (rate-limit backoff, low-yield re-issue, timeout)
# 3. reconcile() - Validate all candidates, merge duplicates, compute the quality report
# 4. run() - dispatch() + reconcile() for a list of chunks
#
# Scheduling: batches of `concurrency` units are awaited in full, then a fixed delay,
# then the next batch in unit order. Auth failures abort the run after the current batch
# settles; every other failure is recorded and the run continues.

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import structlog

from core.config import Settings, settings
from etl.validators import validate_candidates
from pipeline.errors import FatalExtractionError
from pipeline.merge import merge_records
from pipeline.models import (
    ErrorReason,
    ExtractionOptions,
    ExtractionOutcome,
    FinalRecord,
    ProgressEvent,
    QualityReport,
    RawChunk,
    UnitKind,
)
from pipeline.quality import summarize

logger = logging.getLogger(__name__)
run_logger = structlog.get_logger()

ProgressCallback = Callable[[ProgressEvent], Any]


def deadline_errors(skipped: int) -> List[str]:
    """Error entries for units left undispatched by the run deadline."""
    if not skipped:
        return []
    return [f"{skipped} units not dispatched: run deadline exceeded"]


class Reconciliation:
    """Result of validating and merging a run's candidates."""

    def __init__(self, records: List[FinalRecord], report: QualityReport, errors: List[str], warnings: List[str]):
        self.records = records
        self.report = report
        self.errors = errors
        self.warnings = warnings


class ExtractionOrchestrator:
    """
    Drives extraction units through an extraction client.

    The client only needs an ``async extract(chunk) -> ExtractionOutcome``
    method, so tests can swap in a deterministic stub.
    """

    def __init__(
        self,
        client,
        options: Optional[ExtractionOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        cfg: Settings = settings,
    ):
        self.client = client
        self.options = options or ExtractionOptions.from_settings()
        self.progress_callback = progress_callback
        self.sleep = sleep
        self.cfg = cfg

    async def run(
        self, chunks: List[RawChunk], concurrency: Optional[int] = None
    ) -> Tuple[List[FinalRecord], QualityReport]:
        """
        Extract, validate and merge a list of chunks.

        Args:
            chunks: Units in document order
            concurrency: Batch size (defaults to the run options)

        Returns:
            Tuple of (final records, quality report)

        Raises:
            FatalExtractionError: The extraction capability rejected our credentials
        """
        started = time.perf_counter()
        outcomes, skipped = await self.dispatch(chunks, concurrency)
        result = self.reconcile(
            outcomes,
            started,
            units_total=len(chunks),
            units_skipped=skipped,
            extra_errors=deadline_errors(skipped),
        )
        return result.records, result.report

    async def dispatch(
        self, units: List[RawChunk], concurrency: Optional[int] = None
    ) -> Tuple[List[ExtractionOutcome], int]:
        """
        Process units in bounded concurrent batches.

        Args:
            units: Units in document order
            concurrency: Batch size (defaults to the run options)

        Returns:
            Tuple of (outcomes in unit order, number of units never dispatched)

        Raises:
            FatalExtractionError: A unit failed with AUTH_ERROR
        """
        batch_size = max(1, concurrency or self.options.concurrency)
        started = time.perf_counter()
        deadline = self.options.run_timeout_seconds
        outcomes: List[ExtractionOutcome] = []
        skipped = 0
        candidates_so_far = 0

        for batch_index, offset in enumerate(range(0, len(units), batch_size)):
            if deadline is not None and time.perf_counter() - started >= deadline:
                skipped = len(units) - offset
                logger.warning(f"Run deadline of {deadline}s exceeded, {skipped} units not dispatched")
                break

            if batch_index > 0 and self.options.batch_delay_seconds:
                await self.sleep(self.options.batch_delay_seconds)

            batch = units[offset:offset + batch_size]
            logger.info(f"Dispatching batch {batch_index + 1}: units {offset + 1}-{offset + len(batch)} of {len(units)}")
            batch_outcomes = await asyncio.gather(*(self.extract_unit(unit) for unit in batch))
            outcomes.extend(batch_outcomes)
            candidates_so_far += sum(len(outcome.candidates) for outcome in batch_outcomes if outcome.success)

            fatal = next((o for o in batch_outcomes if o.error_reason == ErrorReason.AUTH_ERROR), None)
            if fatal is not None:
                report = summarize(
                    outcomes,
                    records_extracted=candidates_so_far,
                    records_final=0,
                    elapsed_ms=(time.perf_counter() - started) * 1000,
                    units_total=len(units),
                    units_skipped=len(units) - len(outcomes),
                )
                run_logger.error(
                    "Extraction run aborted",
                    unit=fatal.unit.label(),
                    reason=fatal.error_reason.value,
                    units_done=len(outcomes),
                    units_total=len(units),
                )
                raise FatalExtractionError(
                    f"Extraction aborted: {fatal.describe_error()}",
                    reason=ErrorReason.AUTH_ERROR,
                    unit=fatal.unit,
                    report=report,
                )

            await self._notify(
                ProgressEvent(
                    batch_index=batch_index,
                    units_done=len(outcomes),
                    units_total=len(units),
                    candidates_so_far=candidates_so_far,
                )
            )

        return outcomes, skipped

    async def extract_unit(self, unit: RawChunk) -> ExtractionOutcome:
        """
        Extract one unit under the retry policy.

        Rate limits are retried with linear backoff while retries remain. A
        successful but low-yield attempt on substantial content is re-issued
        once and the better of the two attempts is kept. Other failures are
        returned as-is.

        Args:
            unit: Text chunk or page image

        Returns:
            Final ExtractionOutcome for the unit, with retry_count set
        """
        max_retries = self.options.max_retries
        retry_count = 0
        first_attempt: Optional[ExtractionOutcome] = None

        while True:
            outcome = await self._attempt(unit)
            outcome = outcome.model_copy(update={"retry_count": retry_count})

            if outcome.error_reason == ErrorReason.RATE_LIMITED and retry_count < max_retries:
                delay = self.options.backoff_base_seconds * (retry_count + 1)
                logger.info(f"{unit.source_ref.label()}: rate limited, retry {retry_count + 1}/{max_retries} in {delay}s")
                await self.sleep(delay)
                retry_count += 1
                continue

            if outcome.error_reason == ErrorReason.AUTH_ERROR:
                return outcome

            if first_attempt is not None:
                better = outcome.success and len(outcome.candidates) > len(first_attempt.candidates)
                kept = outcome if better else first_attempt
                return kept.model_copy(update={"retry_count": retry_count, "low_yield_retried": True})

            if outcome.success and retry_count < max_retries and self._is_low_yield(unit, outcome):
                logger.info(
                    f"{unit.source_ref.label()}: only {len(outcome.candidates)} candidates from "
                    f"substantial content, re-issuing extraction"
                )
                first_attempt = outcome
                retry_count += 1
                continue

            if not outcome.success:
                logger.warning(outcome.describe_error())
            return outcome

    def reconcile(
        self,
        outcomes: List[ExtractionOutcome],
        started: float,
        units_total: Optional[int] = None,
        units_skipped: int = 0,
        extra_errors: Optional[List[str]] = None,
    ) -> Reconciliation:
        """
        Validate and merge the candidates of all successful outcomes.

        Args:
            outcomes: Outcomes in dispatch order (the merge tie-break relies on it)
            started: perf_counter() value at run start
            units_total: Units in the document
            units_skipped: Units never dispatched
            extra_errors: Errors produced before dispatch (e.g. page cap)

        Returns:
            Reconciliation with records, report, errors and warnings
        """
        ordered = list(outcomes)
        candidates = [candidate for outcome in ordered if outcome.success for candidate in outcome.candidates]

        valid, rejected, warnings = validate_candidates(candidates, self.cfg)
        records = merge_records(valid, self.cfg)

        report = summarize(
            ordered,
            records_extracted=len(candidates),
            records_final=len(records),
            elapsed_ms=(time.perf_counter() - started) * 1000,
            units_total=units_total,
            units_skipped=units_skipped,
            records_rejected=rejected,
        )
        errors = list(extra_errors or []) + [outcome.describe_error() for outcome in ordered if not outcome.success]

        run_logger.info(
            "Extraction run reconciled",
            units_total=report.units_total,
            units_processed=report.units_processed,
            units_failed=report.units_failed,
            records_extracted=report.records_extracted,
            records_final=report.records_final,
            estimated_accuracy=report.estimated_accuracy,
            state=report.state.value,
        )
        return Reconciliation(records, report, errors, warnings)

    async def _attempt(self, unit: RawChunk) -> ExtractionOutcome:
        try:
            return await asyncio.wait_for(self.client.extract(unit), timeout=self.options.call_timeout_seconds)
        except asyncio.TimeoutError:
            return ExtractionOutcome(
                unit=unit.source_ref,
                success=False,
                error_reason=ErrorReason.UPSTREAM_ERROR,
                error_message=f"timed out after {self.options.call_timeout_seconds}s",
            )

    def _is_low_yield(self, unit: RawChunk, outcome: ExtractionOutcome) -> bool:
        if len(outcome.candidates) >= self.options.low_yield_min_candidates:
            return False
        # Page images have no text length of their own; use their transcription
        if unit.kind == UnitKind.IMAGE:
            source_length = len(outcome.text or "")
        else:
            source_length = unit.content_length
        return source_length > self.options.low_yield_min_content

    async def _notify(self, event: ProgressEvent) -> None:
        if self.progress_callback is None:
            return
        try:
            result = self.progress_callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Progress callback failed: {e}")
