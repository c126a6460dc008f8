# WORKFLOW: Aggregate quality metrics for an extraction run.
# Used by: Extraction orchestrator (normal completion and fatal abort), API responses
# Functions:
# 1. summarize() - Build a QualityReport from per-unit outcomes and record counts
#
# Metrics flow: ExtractionOutcomes + record counts + elapsed time -> ratios -> heuristic accuracy -> report
# estimated_accuracy is a heuristic, not ground truth: share of successful units,
# discounted when the low-yield retry fired often, capped low when nothing survived.

import logging
from typing import List, Optional

from pipeline.models import ExtractionOutcome, QualityReport, QualityState

logger = logging.getLogger(__name__)

LOW_YIELD_PENALTY = 0.3
EMPTY_RUN_ACCURACY_CEILING = 0.1


def summarize(
    outcomes: List[ExtractionOutcome],
    records_extracted: int,
    records_final: int,
    elapsed_ms: float,
    units_total: Optional[int] = None,
    units_skipped: int = 0,
    records_rejected: int = 0,
) -> QualityReport:
    """
    Compute the run's QualityReport.

    Never raises: a run where every unit failed yields a report in the
    FAILED state with zero accuracy.

    Args:
        outcomes: One outcome per dispatched unit
        records_extracted: Candidates returned before validation and merge
        records_final: Records left after merge
        elapsed_ms: Wall-clock run time
        units_total: Units in the document (defaults to dispatched + skipped)
        units_skipped: Units never dispatched (page cap, run deadline)
        records_rejected: Candidates dropped by validation

    Returns:
        QualityReport
    """
    dispatched = len(outcomes)
    total = units_total if units_total is not None else dispatched + units_skipped

    try:
        processed = sum(1 for outcome in outcomes if outcome.success)
        failed = dispatched - processed
        low_yield = sum(1 for outcome in outcomes if outcome.low_yield_retried)

        success_ratio = processed / total if total else 0.0
        low_yield_rate = low_yield / processed if processed else 0.0
        accuracy = success_ratio * (1 - LOW_YIELD_PENALTY * low_yield_rate)
        if records_final == 0:
            accuracy = min(accuracy, EMPTY_RUN_ACCURACY_CEILING)
        accuracy = max(0.0, min(1.0, accuracy))

        if processed == 0:
            state = QualityState.FAILED
        elif records_final == 0:
            state = QualityState.EMPTY
        elif failed or units_skipped:
            state = QualityState.PARTIAL
        else:
            state = QualityState.COMPLETE

        return QualityReport(
            units_total=total,
            units_processed=processed,
            units_failed=failed,
            units_skipped=units_skipped,
            low_yield_units=low_yield,
            records_extracted=records_extracted,
            records_rejected=records_rejected,
            records_final=records_final,
            records_per_unit=round(records_final / processed, 1) if processed else 0.0,
            coverage_percent=round(processed / total * 100, 1) if total else 0.0,
            estimated_accuracy=round(accuracy, 2),
            processing_time_ms=round(max(elapsed_ms, 0.0), 1),
            state=state,
        )

    except Exception as e:
        logger.error(f"Failed to compute quality report: {e}")
        return QualityReport(
            units_total=total,
            units_failed=dispatched,
            units_skipped=units_skipped,
            processing_time_ms=max(elapsed_ms, 0.0),
            state=QualityState.FAILED,
        )
