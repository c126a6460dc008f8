# WORKFLOW: Boundary-aware text chunking for LLM extraction.
# Used by: Pipeline runner (text documents), tabular ingestion fallback
# Functions:
# 1. split_text() - Split document text into overlapping RawChunks
# 2. find_break_point() - Locate the nearest natural boundary in the back half of a window
#
# Chunking flow: Document text -> Fixed window -> Snap to newline/row separator -> Overlap -> RawChunk list
# Consecutive chunks share `overlap` characters; duplicates this creates are collapsed by merge.

"""
Boundary-aware text chunking for LLM extraction.
"""

import logging
from typing import List, Optional, Sequence

from core.config import settings
from pipeline.models import RawChunk, SourceRef, UnitKind

logger = logging.getLogger(__name__)


def find_break_point(text: str, floor: int, end: int, delimiters: Sequence[str]) -> Optional[int]:
    """
    Find the cut position just after the last delimiter in text[floor:end].

    Args:
        text: Full document text
        floor: Lowest acceptable delimiter position
        end: Raw window end (exclusive)
        delimiters: Natural boundaries (newline, table row separator, ...)

    Returns:
        Cut offset, or None when no delimiter occurs in the range
    """
    best = -1
    for delimiter in delimiters:
        if not delimiter:
            continue
        position = text.rfind(delimiter, floor, end)
        if position >= 0:
            best = max(best, position + len(delimiter))
    if best <= floor or best > end:
        return None
    return best


def split_text(
    text: str,
    max_size: Optional[int] = None,
    overlap: Optional[int] = None,
    delimiters: Optional[Sequence[str]] = None,
    document_id: str = "document",
) -> List[RawChunk]:
    """
    Split raw document text into overlapping, boundary-aware chunks.

    Args:
        text: Document text
        max_size: Maximum characters per chunk
        overlap: Characters shared by consecutive chunks (must be < max_size)
        delimiters: Natural boundaries searched backward from each window end
        document_id: Identifier used for chunk provenance

    Returns:
        Ordered list of RawChunk objects
    """
    max_size = settings.max_chunk_size if max_size is None else max_size
    overlap = settings.chunk_overlap if overlap is None else overlap
    delimiters = settings.chunk_delimiters if delimiters is None else delimiters

    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")
    if overlap < 0 or overlap >= max_size:
        raise ValueError(f"overlap must be in [0, max_size), got {overlap} for max_size {max_size}")

    length = len(text)
    if length <= max_size:
        return [_make_chunk(text, 0, 0, length, document_id)]

    chunks: List[RawChunk] = []
    start = 0
    while start < length:
        end = min(start + max_size, length)

        if end < length:
            # Only snap inside the back half, and never so far back that the
            # next window would fail to advance past this one's start.
            floor = max(start + max_size // 2, start + overlap)
            break_point = find_break_point(text, floor, end, delimiters)
            if break_point is not None:
                end = break_point

        chunks.append(_make_chunk(text[start:end], len(chunks), start, end, document_id))

        if end >= length:
            break
        start = end - overlap

    logger.info(f"Split {length} characters into {len(chunks)} chunks (max_size={max_size}, overlap={overlap})")
    return chunks


def _make_chunk(content: str, index: int, start: int, end: int, document_id: str) -> RawChunk:
    return RawChunk(
        index=index,
        content=content,
        kind=UnitKind.TEXT,
        source_ref=SourceRef(document_id=document_id, unit_number=index + 1, kind=UnitKind.TEXT),
        start_offset=start,
        end_offset=end,
    )
