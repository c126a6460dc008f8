# WORKFLOW: Duty rate parser for rates read from tariff listings.
# Used by: Record validator, tabular ingestion
# Functions:
# 1. parse_rate() - Turn a raw rate cell/model value into a percentage float
# 2. validate_rate_format() - Check that a rate string looks like a rate
#
# Parsing flow: Raw value -> Exemption markers -> Ad valorem percentage -> float or None
# Supports: numbers, "10", "10 %", "2,5%", "-" and "ex"/"exempt" as exemptions (0%).

"""
Duty rate parser for rates read from tariff listings.
"""

import logging
import math
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

EXEMPTION_MARKERS = {"-", "–", "—", "ex", "exempt", "exonéré", "exonere", "free", "néant", "neant"}

RATE_PATTERN = re.compile(r'^(\d+(?:[.,]\d+)?)\s*%?$')


def validate_rate_format(rate_str: str) -> bool:
    """
    Validate rate string format.

    Args:
        rate_str: Rate string to validate

    Returns:
        True if the string is a number, a percentage, or an exemption marker
    """
    if not rate_str or rate_str.strip() == '':
        return False

    cleaned = rate_str.strip().lower()
    if cleaned in EXEMPTION_MARKERS:
        return True

    return RATE_PATTERN.match(cleaned) is not None


def parse_rate(value: Any) -> Optional[float]:
    """
    Parse a duty rate into a percentage value.

    Args:
        value: Rate as a number or string (e.g. 10, "10", "2,5 %", "-")

    Returns:
        Percentage as float, 0.0 for exemptions, None when absent or unparseable
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        return float(value)

    rate_str = str(value).strip()
    if rate_str == '':
        return None

    if not validate_rate_format(rate_str):
        logger.debug(f"Unrecognized rate format: {rate_str}")
        return None

    cleaned = rate_str.lower()
    if cleaned in EXEMPTION_MARKERS:
        return 0.0

    match = RATE_PATTERN.match(cleaned)
    return float(match.group(1).replace(',', '.'))
