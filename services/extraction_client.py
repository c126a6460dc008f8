# WORKFLOW: LLM client for structured tariff-code extraction from one unit.
# Used by: Extraction orchestrator and page pipeline (one call per chunk or page)
# Functions:
# 1. ExtractionClient.extract() - Single attempt: prompt -> structured reply -> CandidateRecords
# 2. build_messages() - Chat messages for a text chunk or a page image
# 3. parse_response() - Decode and schema-check the model reply
# 4. classify_status() - Map an upstream HTTP status to an ErrorReason
#
# Extraction flow: RawChunk -> Prompt + schema -> Ollama chat -> JSON -> Schema check -> CandidateRecords
# Upstream, transport and reply failures are returned as unsuccessful ExtractionOutcomes; retry policy
# belongs to the orchestrator.

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

import httpx
import jsonschema
import ollama

from core.config import Settings, settings
from pipeline.models import CandidateRecord, ErrorReason, ExtractionOutcome, RawChunk, SourceRef, UnitKind
from services.prompts import PAGE_PROMPT_TEMPLATE, RESPONSE_SCHEMA, SYSTEM_PROMPT, TEXT_PROMPT_TEMPLATE

logger = logging.getLogger(__name__)

JSON_BLOCK = re.compile(r'(\{.*\}|\[.*\])', re.DOTALL)


def classify_status(status_code: Optional[int]) -> ErrorReason:
    """Map an upstream HTTP status code to an ErrorReason."""
    if status_code == 429:
        return ErrorReason.RATE_LIMITED
    if status_code in (401, 402, 403):
        return ErrorReason.AUTH_ERROR
    return ErrorReason.UPSTREAM_ERROR


def parse_response(content: Optional[str]) -> Dict[str, Any]:
    """
    Decode the model reply into a schema-conforming dict.

    Args:
        content: Raw message content returned by the model

    Returns:
        Dict with a "codes" list and an optional "page_text"

    Raises:
        ValueError: Reply is empty or not JSON
        jsonschema.ValidationError: Reply does not match RESPONSE_SCHEMA
    """
    if not content or not content.strip():
        raise ValueError("Empty response from model")

    text = content.strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        # Models sometimes wrap the JSON in prose or code fences
        match = JSON_BLOCK.search(text)
        if not match:
            raise
        parsed = json.loads(match.group(1))

    if isinstance(parsed, list):
        parsed = {"codes": parsed}
    elif isinstance(parsed, dict) and "codes" not in parsed and isinstance(parsed.get("items"), list):
        parsed = {**parsed, "codes": parsed["items"]}

    jsonschema.validate(instance=parsed, schema=RESPONSE_SCHEMA)
    return parsed


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


class ExtractionClient:
    """Wraps one call to the structured-extraction model."""

    def __init__(
        self,
        client: Optional[ollama.AsyncClient] = None,
        model: Optional[str] = None,
        vision_model: Optional[str] = None,
        cfg: Settings = settings,
    ):
        self.cfg = cfg
        self.client = client or ollama.AsyncClient(host=cfg.ollama_url, timeout=cfg.call_timeout_seconds)
        self.model = model or cfg.extraction_model
        self.vision_model = vision_model or cfg.vision_model

    def build_messages(self, chunk: RawChunk) -> List[Dict[str, Any]]:
        """Build chat messages for a text chunk or a page image."""
        unit_label = chunk.source_ref.label()

        if chunk.kind == UnitKind.IMAGE:
            prompt = PAGE_PROMPT_TEMPLATE.format(page_number=chunk.source_ref.unit_number, unit_label=unit_label)
            return [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt, "images": [chunk.content]},
            ]

        content = str(chunk.content)[:self.cfg.max_content_per_unit]
        prompt = TEXT_PROMPT_TEMPLATE.format(unit_label=unit_label, content=content)
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def extract(self, chunk: RawChunk) -> ExtractionOutcome:
        """
        Run a single extraction attempt for one unit.

        Args:
            chunk: Text chunk or page image

        Returns:
            ExtractionOutcome with candidates, or with error_reason set on failure
        """
        started = time.perf_counter()
        unit = chunk.source_ref

        if chunk.kind == UnitKind.TEXT and len(str(chunk.content).strip()) < self.cfg.min_content_for_extraction:
            logger.debug(f"{unit.label()}: content below extraction minimum, skipping call")
            return ExtractionOutcome(unit=unit, success=True, processing_time_ms=_elapsed_ms(started))

        model = self.vision_model if chunk.kind == UnitKind.IMAGE else self.model

        try:
            response = await self.client.chat(
                model=model,
                messages=self.build_messages(chunk),
                format=RESPONSE_SCHEMA,
                options={
                    "temperature": self.cfg.llm_temperature,
                    "num_predict": self.cfg.llm_max_tokens,
                },
            )
        except ollama.ResponseError as e:
            reason = classify_status(e.status_code)
            logger.warning(f"{unit.label()}: upstream returned {e.status_code} ({reason.value}): {e.error}")
            return self._failure(unit, reason, f"HTTP {e.status_code}: {e.error}", started)
        except httpx.TimeoutException as e:
            logger.warning(f"{unit.label()}: extraction call timed out: {e}")
            return self._failure(unit, ErrorReason.UPSTREAM_ERROR, "timeout", started)
        except (httpx.HTTPError, ConnectionError) as e:
            logger.warning(f"{unit.label()}: transport error: {e}")
            return self._failure(unit, ErrorReason.UPSTREAM_ERROR, str(e), started)
        except ollama.RequestError as e:
            logger.error(f"{unit.label()}: extraction request rejected by client: {e.error}")
            return self._failure(unit, ErrorReason.UPSTREAM_ERROR, e.error, started)

        try:
            payload = parse_response(response["message"]["content"])
        except (ValueError, TypeError, KeyError, jsonschema.ValidationError) as e:
            message = e.message if isinstance(e, jsonschema.ValidationError) else str(e)
            logger.warning(f"{unit.label()}: malformed model response: {message}")
            return self._failure(unit, ErrorReason.MALFORMED_RESPONSE, message, started)

        candidates = self.to_candidates(payload.get("codes", []), unit)
        logger.info(f"{unit.label()}: {len(candidates)} candidates from {len(payload.get('codes', []))} raw items")

        return ExtractionOutcome(
            unit=unit,
            success=True,
            candidates=candidates,
            text=_as_text(payload.get("page_text")),
            processing_time_ms=_elapsed_ms(started),
        )

    @staticmethod
    def to_candidates(items: List[Dict[str, Any]], unit: SourceRef) -> List[CandidateRecord]:
        """
        Map raw reply items to CandidateRecords.

        Items with neither code nor label are dropped. Codes must be strings:
        a numeric code has lost its leading zeros (101210000 for 0101.21.00) and
        would normalize to the wrong chapter, so such items are dropped too.
        """
        candidates = []
        for item in items:
            raw_code = item.get("code")
            if raw_code is not None and not isinstance(raw_code, str):
                logger.warning(f"{unit.label()}: dropping item with non-string code {raw_code!r}")
                continue
            code = _as_text(raw_code)
            label = _as_text(item.get("label"))
            if code is None and label is None:
                continue

            parent_code = item.get("parent_code")
            if parent_code is not None and not isinstance(parent_code, str):
                logger.warning(f"{unit.label()}: ignoring non-string parent code {parent_code!r}")
                parent_code = None

            rate = item.get("rate")
            candidates.append(
                CandidateRecord(
                    raw_code=code,
                    label=label,
                    unit=_as_text(item.get("unit")),
                    numeric_rate=rate if isinstance(rate, (int, float, str)) and not isinstance(rate, bool) else None,
                    notes=_as_text(item.get("notes")),
                    parent_code=_as_text(parent_code),
                    origin_chunk=unit,
                )
            )
        return candidates

    @staticmethod
    def _failure(unit: SourceRef, reason: ErrorReason, message: str, started: float) -> ExtractionOutcome:
        return ExtractionOutcome(
            unit=unit,
            success=False,
            error_reason=reason,
            error_message=message,
            processing_time_ms=_elapsed_ms(started),
        )


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def create_extraction_client() -> ExtractionClient:
    """Create extraction client instance."""
    return ExtractionClient()
