# WORKFLOW: Domain validation of extracted tariff-code candidates.
# Used by: Extraction orchestrator (before merge), tabular ingestion, tests
# Functions:
# 1. normalize_code() - Strip separators, rebuild partial codes from their parent
# 2. derive_keys() - Fixed-width primary key (10 digits) and optional extended key (14 digits)
# 3. validate_hs_code() - Format and chapter range check of a primary key
# 4. validate_candidate() - Turn one CandidateRecord into a FinalRecord or reject it
# 5. validate_candidates() - Validate a batch, collecting warnings and rejection counts
#
# Validation flow: Raw code -> Digits -> Length rule -> Keys -> Chapter rule -> Soft checks -> FinalRecord
# Hard failures (missing code/label, too few digits, chapter outside 01-99) reject the candidate.
# Soft failures (short label, implausible rate, odd unit) are reported but never reject.

"""
Domain validation of extracted tariff-code candidates.
"""

import logging
import re
from typing import List, Optional, Tuple

from core.config import Settings, settings
from etl.rate_parser import parse_rate
from pipeline.models import CandidateRecord, FinalRecord

logger = logging.getLogger(__name__)

VALID_UNITS = {
    "u", "kg", "l", "m", "m2", "m3", "p/st", "tonne", "ct", "g", "pair", "paire",
    "1000u", "1000 u", "t", "kw", "kwh",
}

NON_DIGIT = re.compile(r'\D')
DIGITS_ONLY_LABEL = re.compile(r'^[\d\s.\-–—]+$')


def normalize_code(raw_code: Optional[str], parent_code: Optional[str] = None, min_digits: int = 6) -> str:
    """
    Normalize a raw tariff code to a bare digit string.

    Args:
        raw_code: Code as extracted (e.g. "0303.14 00 00", "15 00")
        parent_code: Parent heading for partial sub-codes (e.g. "0301.91")
        min_digits: Minimum digits of a standalone code

    Returns:
        Digit string (possibly shorter than min_digits when nothing can be rebuilt)
    """
    digits = NON_DIGIT.sub('', raw_code or '')
    if len(digits) < min_digits and parent_code:
        parent_digits = NON_DIGIT.sub('', parent_code)
        if len(parent_digits) >= 4:
            digits = parent_digits + digits
    return digits


def derive_keys(digits: str, cfg: Settings = settings) -> Tuple[str, Optional[str]]:
    """
    Derive the primary key and optional extended key from a digit string.

    Args:
        digits: Normalized digit string of at least min_code_digits
        cfg: Settings providing key widths

    Returns:
        Tuple of (primary_key, extended_key or None)
    """
    width = cfg.primary_key_digits
    if len(digits) <= width:
        return digits.ljust(width, '0'), None
    extended_width = cfg.extended_key_digits
    return digits[:width], digits[:extended_width].ljust(extended_width, '0')


def validate_hs_code(hs_code: str) -> bool:
    """
    Validate a normalized primary key.

    Args:
        hs_code: Code to validate

    Returns:
        True if it is exactly 10 digits with a chapter in 01-99
    """
    if not hs_code or not isinstance(hs_code, str):
        return False
    if not re.match(r'^\d{10}$', hs_code):
        return False
    return 1 <= int(hs_code[:2]) <= 99


def validate_candidate(
    candidate: CandidateRecord,
    cfg: Settings = settings,
) -> Tuple[Optional[FinalRecord], List[str]]:
    """
    Validate and normalize a single candidate record.

    Args:
        candidate: Candidate proposed by the extraction model
        cfg: Settings providing validation thresholds

    Returns:
        Tuple of (FinalRecord or None when rejected, list of violation strings)
    """
    violations: List[str] = []

    raw_code = (candidate.raw_code or '').strip()
    label = ' '.join((candidate.label or '').split())

    if not raw_code:
        return None, ["Missing code"]
    if not label:
        return None, [f"Missing label for code {raw_code}"]

    digits = normalize_code(raw_code, candidate.parent_code, cfg.min_code_digits)
    if len(digits) < cfg.min_code_digits:
        return None, [f"Code too short: {raw_code!r} -> {digits!r}"]

    primary_key, extended_key = derive_keys(digits, cfg)

    chapter = int(primary_key[:2])
    if chapter < 1 or chapter > 99:
        return None, [f"Invalid chapter {primary_key[:2]} in code {raw_code!r}"]

    # Soft checks
    if len(label) < cfg.min_label_length:
        violations.append(f"{primary_key}: label shorter than {cfg.min_label_length} characters")
    if DIGITS_ONLY_LABEL.match(label):
        violations.append(f"{primary_key}: label contains only digits")
    if len(label) > cfg.label_max_length:
        violations.append(f"{primary_key}: label truncated from {len(label)} characters")
        label = label[:cfg.label_max_length].rstrip()

    numeric_rate = parse_rate(candidate.numeric_rate)
    if candidate.numeric_rate not in (None, '') and numeric_rate is None:
        violations.append(f"{primary_key}: unparseable rate {candidate.numeric_rate!r}")
    if numeric_rate is not None and not (cfg.rate_min <= numeric_rate <= cfg.rate_max):
        violations.append(f"{primary_key}: rate {numeric_rate} outside [{cfg.rate_min:g}, {cfg.rate_max:g}]")

    unit = (candidate.unit or '').strip() or None
    if unit is not None and unit.lower() not in VALID_UNITS:
        violations.append(f"{primary_key}: non-standard unit {unit!r}")

    notes = (candidate.notes or '').strip() or None

    record = FinalRecord(
        primary_key=primary_key,
        extended_key=extended_key,
        label=label,
        unit=unit,
        numeric_rate=numeric_rate,
        notes=notes,
        origin=candidate.origin_chunk,
    )
    return record, violations


def validate_candidates(
    candidates: List[CandidateRecord],
    cfg: Settings = settings,
) -> Tuple[List[FinalRecord], int, List[str]]:
    """
    Validate a list of candidates, preserving their order.

    Args:
        candidates: Candidates in unit order
        cfg: Settings providing validation thresholds

    Returns:
        Tuple of (valid records, rejected count, soft warnings)
    """
    records: List[FinalRecord] = []
    warnings: List[str] = []
    rejected = 0

    for candidate in candidates:
        record, violations = validate_candidate(candidate, cfg)
        if record is None:
            rejected += 1
            logger.debug(f"Rejected candidate {candidate.raw_code!r}: {'; '.join(violations)}")
            continue
        records.append(record)
        warnings.extend(violations)

    logger.info(f"Validated {len(candidates)} candidates: {len(records)} valid, {rejected} rejected")
    return records, rejected, warnings
