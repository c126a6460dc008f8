# WORKFLOW: Tests for the page pipeline (scanned documents).
# Used by: CI, development testing
# Test scenarios:
# 1. Page cap: pages beyond max_pages are never dispatched
# 2. Render failures are recorded per page without aborting the run
# 3. Per-page transcriptions are combined in page order

from types import SimpleNamespace

import pytest

from pipeline.models import ErrorReason, PageImage, SourceRef, UnitKind
from pipeline.orchestrator import ExtractionOrchestrator
from pipeline.pages import PagePipeline, build_page_units, combine_page_text


def pages(count, missing=()):
    return [
        PageImage(page_number=n, data=None if n in missing else "aGVsbG8=", error="renderer crashed" if n in missing else None)
        for n in range(1, count + 1)
    ]


def page_pipeline(client, sleep, options):
    return PagePipeline(ExtractionOrchestrator(client, options=options, sleep=sleep))


@pytest.mark.asyncio
async def test_page_cap(stub_client, outcome, sleep_recorder, fast_options):
    client = stub_client(lambda chunk, attempt: outcome.success(chunk, text=f"row of page {chunk.source_ref.unit_number}"))
    pipeline = page_pipeline(client, sleep_recorder, fast_options(max_pages=3))

    result = await pipeline.process_pages(pages(5))

    assert sorted(client.calls) == [1, 2, 3]
    assert result.pages_total == 5
    assert result.pages_over_cap == 2
    assert result.pages_skipped == 2
    assert result.pages_processed == 3


@pytest.mark.asyncio
async def test_render_failure_is_recorded(stub_client, outcome, sleep_recorder, fast_options):
    client = stub_client(lambda chunk, attempt: outcome.success(chunk))
    pipeline = page_pipeline(client, sleep_recorder, fast_options())

    result = await pipeline.process_pages(pages(3, missing={2}))

    assert sorted(client.calls) == [1, 3]
    assert [o.unit.unit_number for o in result.outcomes] == [1, 2, 3]
    failed = result.outcomes[1]
    assert not failed.success
    assert failed.error_reason == ErrorReason.RENDER_FAILED
    assert failed.error_message == "renderer crashed"
    assert result.pages_failed == 1


@pytest.mark.asyncio
async def test_page_failures_do_not_abort(stub_client, outcome, candidate, sleep_recorder, fast_options):
    def respond(chunk, attempt):
        if chunk.source_ref.unit_number == 1:
            return outcome.failure(chunk, ErrorReason.UPSTREAM_ERROR)
        return outcome.success(chunk, [candidate("0303.14.00", origin_chunk=chunk.source_ref)])

    pipeline = page_pipeline(stub_client(respond), sleep_recorder, fast_options())

    result = await pipeline.process_pages(pages(2))

    assert result.pages_failed == 1
    assert len(result.candidates) == 1


@pytest.mark.asyncio
async def test_combined_text_in_page_order(stub_client, outcome, sleep_recorder, fast_options):
    client = stub_client(lambda chunk, attempt: outcome.success(chunk, text=f"text {chunk.source_ref.unit_number}"))
    pipeline = page_pipeline(client, sleep_recorder, fast_options())

    shuffled = list(reversed(pages(3)))
    result = await pipeline.process_pages(shuffled)

    assert result.combined_text == "--- Page 1 ---\ntext 1\n\n--- Page 2 ---\ntext 2\n\n--- Page 3 ---\ntext 3"


def test_build_page_units():
    units, failures = build_page_units(pages(3, missing={3}), "scan.pdf")

    assert [u.source_ref.unit_number for u in units] == [1, 2]
    assert all(u.kind == UnitKind.IMAGE for u in units)
    assert units[0].source_ref.label() == "scan.pdf#page-1"
    assert failures[0].unit.unit_number == 3


def test_combine_page_text_skips_failed_pages(outcome):
    def unit(n):
        return SimpleNamespace(source_ref=SourceRef(document_id="d", unit_number=n, kind=UnitKind.IMAGE))

    outcomes = [
        outcome.success(unit(1), text="first"),
        outcome.failure(unit(2), ErrorReason.UPSTREAM_ERROR),
        outcome.success(unit(3)),
    ]

    assert combine_page_text(outcomes) == "--- Page 1 ---\nfirst"
