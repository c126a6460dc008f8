# WORKFLOW: Shared fixtures for the extraction pipeline tests.
# Used by: All test modules
# Fixtures:
# 1. stub_client - Factory for a scripted extraction client (no model calls)
# 2. sleep_recorder - Awaitable sleep that records requested delays instead of waiting
# 3. make_chunks / candidate - Builders for units and candidate records
# 4. fast_options - Run options with no batch delay
#
# Tests run offline: the orchestrator only needs an object with `async extract(chunk)`.

import pytest

from pipeline.models import (
    CandidateRecord,
    ErrorReason,
    ExtractionOptions,
    ExtractionOutcome,
    RawChunk,
    SourceRef,
    UnitKind,
)


class StubClient:
    """Extraction client whose replies come from a responder(chunk, attempt) callable."""

    def __init__(self, responder):
        self.responder = responder
        self.calls = []

    async def extract(self, chunk):
        attempt = sum(1 for unit in self.calls if unit == chunk.source_ref.unit_number) + 1
        self.calls.append(chunk.source_ref.unit_number)
        result = self.responder(chunk, attempt)
        if hasattr(result, "__await__"):
            result = await result
        return result


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def success(chunk, candidates=None, text=None):
    return ExtractionOutcome(unit=chunk.source_ref, success=True, candidates=candidates or [], text=text)


def failure(chunk, reason, message="stub failure"):
    return ExtractionOutcome(unit=chunk.source_ref, success=False, error_reason=reason, error_message=message)


def make_candidate(code, label="Live horses for breeding purposes", **fields):
    return CandidateRecord(raw_code=code, label=label, **fields)


def build_chunks(count, size=200, document_id="doc"):
    return [
        RawChunk(
            index=i,
            content="x" * size,
            kind=UnitKind.TEXT,
            source_ref=SourceRef(document_id=document_id, unit_number=i + 1),
        )
        for i in range(count)
    ]


@pytest.fixture
def stub_client():
    return StubClient


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def make_chunks():
    return build_chunks


@pytest.fixture
def candidate():
    return make_candidate


@pytest.fixture
def outcome():
    """Namespace of outcome builders: outcome.success(...), outcome.failure(...)."""

    class Builders:
        pass

    Builders.success = staticmethod(success)
    Builders.failure = staticmethod(failure)
    Builders.reasons = ErrorReason
    return Builders


@pytest.fixture
def fast_options():
    def build(**overrides):
        values = {"batch_delay_seconds": 0, "backoff_base_seconds": 2.0, "max_retries": 2, "concurrency": 4}
        values.update(overrides)
        return ExtractionOptions.from_settings(**values)

    return build
