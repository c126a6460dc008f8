# WORKFLOW: Tests for the run quality report.
# Used by: CI, development testing
# Test scenarios:
# 1. Complete, partial, empty and failed runs
# 2. Low-yield penalty on estimated accuracy
# 3. summarize() never raises

from pipeline.models import ErrorReason, ExtractionOutcome, QualityState, SourceRef
from pipeline.quality import summarize


def ok(n, low_yield=False):
    return ExtractionOutcome(unit=SourceRef(document_id="doc", unit_number=n), success=True,
                             low_yield_retried=low_yield)


def failed(n):
    return ExtractionOutcome(unit=SourceRef(document_id="doc", unit_number=n), success=False,
                             error_reason=ErrorReason.UPSTREAM_ERROR)


def test_complete_run():
    report = summarize([ok(1), ok(2)], records_extracted=4, records_final=3, elapsed_ms=12.0)

    assert report.state == QualityState.COMPLETE
    assert report.units_total == 2
    assert report.units_processed == 2
    assert report.estimated_accuracy == 1.0
    assert report.records_per_unit == 1.5
    assert report.coverage_percent == 100.0


def test_all_units_failed():
    report = summarize([failed(1), failed(2)], records_extracted=0, records_final=0, elapsed_ms=5.0)

    assert report.state == QualityState.FAILED
    assert report.units_failed == 2
    assert report.estimated_accuracy == 0.0
    assert report.records_per_unit == 0.0


def test_no_units_at_all():
    report = summarize([], records_extracted=0, records_final=0, elapsed_ms=0.0)

    assert report.state == QualityState.FAILED
    assert report.units_total == 0
    assert report.estimated_accuracy == 0.0


def test_low_yield_penalty():
    report = summarize([ok(1, low_yield=True), ok(2)], records_extracted=5, records_final=5, elapsed_ms=1.0)

    assert report.low_yield_units == 1
    assert report.estimated_accuracy == 0.85


def test_empty_run_is_capped():
    report = summarize([ok(1), ok(2)], records_extracted=3, records_final=0, elapsed_ms=1.0, records_rejected=3)

    assert report.state == QualityState.EMPTY
    assert report.estimated_accuracy <= 0.1
    assert report.records_rejected == 3


def test_partial_run_with_skipped_units():
    report = summarize([ok(1), failed(2)], records_extracted=2, records_final=2, elapsed_ms=1.0,
                       units_total=4, units_skipped=2)

    assert report.state == QualityState.PARTIAL
    assert report.units_total == 4
    assert report.units_skipped == 2
    assert report.coverage_percent == 25.0
    assert report.estimated_accuracy == 0.25
