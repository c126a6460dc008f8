# WORKFLOW: Page pipeline for image-bearing documents (scanned tariff PDFs).
# Used by: Pipeline runner when the caller supplies rendered page images
# Functions:
# 1. PagePipeline.process_pages() - Cap pages, extract each page image, aggregate outcomes
# 2. build_page_units() - Turn PageImages into image RawChunks (sorted by page number)
# 3. combine_page_text() - Join per-page transcriptions in page order
#
# Page flow: Page images -> Cap at max_pages -> Render failures recorded -> Orchestrator.dispatch()
#            -> Per-page outcomes + combined text + combined candidates -> same validate/merge stage

import logging
from typing import List, Optional, Tuple

from pipeline.models import (
    CandidateRecord,
    ErrorReason,
    ExtractionOutcome,
    PageImage,
    RawChunk,
    SourceRef,
    UnitKind,
)
from pipeline.orchestrator import ExtractionOrchestrator

logger = logging.getLogger(__name__)


class PageRunResult:
    """Aggregated per-page outcomes of one document."""

    def __init__(
        self,
        outcomes: List[ExtractionOutcome],
        combined_text: str,
        candidates: List[CandidateRecord],
        pages_total: int,
        pages_over_cap: int,
        pages_not_dispatched: int = 0,
    ):
        self.outcomes = outcomes
        self.combined_text = combined_text
        self.candidates = candidates
        self.pages_total = pages_total
        self.pages_over_cap = pages_over_cap
        self.pages_not_dispatched = pages_not_dispatched

    @property
    def pages_skipped(self) -> int:
        return self.pages_over_cap + self.pages_not_dispatched

    @property
    def pages_processed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def pages_failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)


def build_page_units(pages: List[PageImage], document_id: str) -> Tuple[List[RawChunk], List[ExtractionOutcome]]:
    """
    Build image units for renderable pages.

    Args:
        pages: Page images sorted by page number
        document_id: Identifier used for page provenance

    Returns:
        Tuple of (units to dispatch, failed outcomes for pages the renderer could not produce)
    """
    units: List[RawChunk] = []
    render_failures: List[ExtractionOutcome] = []

    for index, page in enumerate(pages):
        ref = SourceRef(document_id=document_id, unit_number=page.page_number, kind=UnitKind.IMAGE)
        if page.error or not page.data:
            reason = page.error or "no image data"
            logger.warning(f"{ref.label()}: rendering failed: {reason}")
            render_failures.append(
                ExtractionOutcome(unit=ref, success=False, error_reason=ErrorReason.RENDER_FAILED, error_message=reason)
            )
            continue
        units.append(RawChunk(index=index, content=page.data, kind=UnitKind.IMAGE, source_ref=ref))

    return units, render_failures


def combine_page_text(outcomes: List[ExtractionOutcome]) -> str:
    """Join the transcriptions of successful pages under page headers."""
    sections = [
        f"--- Page {outcome.unit.unit_number} ---\n{outcome.text}"
        for outcome in sorted(outcomes, key=lambda o: o.unit.unit_number)
        if outcome.success and outcome.text
    ]
    return "\n\n".join(sections)


class PagePipeline:
    """Runs page images through the orchestrator's dispatch and retry policy."""

    def __init__(self, orchestrator: ExtractionOrchestrator):
        self.orchestrator = orchestrator

    async def process_pages(
        self,
        page_images: List[PageImage],
        max_pages: Optional[int] = None,
        document_id: str = "document",
    ) -> PageRunResult:
        """
        Extract candidates from each page image.

        Pages beyond the cap are not processed and are reported as skipped.
        Page failures never abort the run; only an auth failure does.

        Args:
            page_images: Rendered pages in any order
            max_pages: Page cap (defaults to the run options)
            document_id: Identifier used for page provenance

        Returns:
            PageRunResult with one outcome per processed page

        Raises:
            FatalExtractionError: The extraction capability rejected our credentials
        """
        cap = max_pages or self.orchestrator.options.max_pages
        pages = sorted(page_images, key=lambda page: page.page_number)
        selected = pages[:cap]
        skipped = len(pages) - len(selected)

        if skipped:
            logger.warning(f"{document_id}: {len(pages)} pages exceed the cap of {cap}, {skipped} pages not processed")

        units, render_failures = build_page_units(selected, document_id)
        dispatched, not_dispatched = await self.orchestrator.dispatch(units)

        outcomes = sorted(render_failures + dispatched, key=lambda outcome: outcome.unit.unit_number)
        candidates = [candidate for outcome in outcomes if outcome.success for candidate in outcome.candidates]

        logger.info(
            f"{document_id}: {sum(1 for o in outcomes if o.success)}/{len(outcomes)} pages extracted, "
            f"{len(candidates)} candidates"
        )

        return PageRunResult(
            outcomes=outcomes,
            combined_text=combine_page_text(outcomes),
            candidates=candidates,
            pages_total=len(pages),
            pages_over_cap=skipped,
            pages_not_dispatched=not_dispatched,
        )
