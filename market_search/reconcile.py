"""Merging index results with datastore fallback results.

The merged ``total`` is an approximation: it is the larger of the two source
totals, not the size of their union. It under-counts when the sources match
disjoint rows and may exceed what can actually be paged through when the two
sources overlap. Callers should treat it as an estimate.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence, TypeVar

from .models import SearchResultPage, SuggestionItem

logger = logging.getLogger(__name__)


class HasId(Protocol):
    id: str


T = TypeVar("T", bound=HasId)


def fallback_batch_size(limit: int) -> int:
    """Over-fetch so the merge still fills ``limit`` after dropping overlaps."""
    return max(limit * 3, limit + 20)


def suggestion_fallback_size(limit: int) -> int:
    return max(limit * 2, limit + 5)


def needs_fallback(primary: Optional[SearchResultPage], limit: int, page: int = 1) -> bool:
    # Only a short first page is topped up; deeper pages keep index results as-is.
    if primary is None:
        return True
    return page == 1 and len(primary.items) < limit


def union_by_id(primary: Iterable[T], fallback: Iterable[T], limit: int) -> List[T]:
    """Primary items in their original order, then unseen fallback items, capped at ``limit``."""
    merged: List[T] = []
    seen: set[str] = set()
    for source in (primary, fallback):
        for item in source:
            if len(merged) >= limit:
                return merged
            key = str(item.id)
            if key in seen:
                continue
            seen.add(key)
            merged.append(item)
    return merged


def merge_pages(
    primary: SearchResultPage[T],
    fallback: SearchResultPage[T],
    limit: int,
) -> SearchResultPage[T]:
    items = union_by_id(primary.items, fallback.items, limit)
    total = max(primary.total, fallback.total, len(items))
    logger.debug(
        "merge primary=%s/%s fallback=%s/%s -> items=%s total=%s",
        len(primary.items),
        primary.total,
        len(fallback.items),
        fallback.total,
        len(items),
        total,
    )
    return type(primary).build(items, total, primary.page, limit)


def merge_suggestions(
    primary: Sequence[SuggestionItem],
    fallback: Sequence[SuggestionItem],
    limit: int,
) -> List[SuggestionItem]:
    return union_by_id(primary, fallback, limit)
