# WORKFLOW: Error taxonomy for extraction runs.
# Used by: Orchestrator (raises), runner and API (translate to run-level failure)
# Classes:
# 1. ExtractionError - Base class for pipeline errors
# 2. FatalExtractionError - Run aborted (authentication/authorization failure upstream)
#
# Retryable (rate limit) and degraded (malformed, upstream, timeout, render) failures
# never raise; they travel as ExtractionOutcome values.

from typing import Optional

from pipeline.models import ErrorReason, QualityReport, SourceRef


class ExtractionError(Exception):
    """Base class for extraction pipeline errors."""


class FatalExtractionError(ExtractionError):
    """Raised when the run must abort without a result."""

    def __init__(
        self,
        message: str,
        reason: ErrorReason = ErrorReason.AUTH_ERROR,
        unit: Optional[SourceRef] = None,
        report: Optional[QualityReport] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.unit = unit
        self.report = report or QualityReport()
