# WORKFLOW: Cross-chunk deduplication of validated tariff records.
# Used by: Extraction orchestrator, tabular ingestion, tests
# Functions:
# 1. information_score() - Score how complete a record variant is
# 2. merge_records() - Collapse records sharing a primary key into the most informative one
#
# Merge flow: Valid records (unit order) -> Group by primary key -> Score -> Keep best (first on ties)
# Absorbs duplicates introduced by chunk overlap and by repeated extraction passes.

from typing import Dict, List

from core.config import Settings, settings
from pipeline.models import FinalRecord


def information_score(record: FinalRecord, cfg: Settings = settings) -> int:
    """Heuristic completeness of a record variant."""
    score = 0
    if record.extended_key:
        score += 2
    if record.unit:
        score += 1
    if record.numeric_rate is not None:
        score += 1
    if record.notes:
        score += 1
    if len(record.label) > cfg.short_label_threshold:
        score += 1
    return score


def merge_records(records: List[FinalRecord], cfg: Settings = settings) -> List[FinalRecord]:
    """
    Collapse records with the same primary key.

    The reduction is pure and order-stable: groups come out in the order their
    key was first seen, and among equally scored variants the earliest wins.

    Args:
        records: Validated records in unit order
        cfg: Settings providing the short-label threshold

    Returns:
        Records with unique primary keys, each carrying its information score
    """
    winners: Dict[str, FinalRecord] = {}

    for record in records:
        scored = record.model_copy(update={"information_score": information_score(record, cfg)})
        current = winners.get(scored.primary_key)
        if current is None or scored.information_score > current.information_score:
            winners[scored.primary_key] = scored

    return list(winners.values())
