"""Filter / sort / slice over the in-memory catalog.

Pure functions only: the input list is never mutated and every call returns
a fresh list.
"""

from __future__ import annotations

import unicodedata
from typing import Callable, Dict, Iterable, List, Sequence

from .catalog_state import CatalogState, SortKey
from .config import ALL_CATEGORIES, DAY_MS, CatalogItem


def searchable_text(item: CatalogItem) -> str:
    topics = " ".join(item.topics or [])
    return f"{item.name} {item.description} {item.author} {item.repo} {topics}".lower()


def _matches(item: CatalogItem, state: CatalogState, term: str, now_ms: int) -> bool:
    if term and term not in searchable_text(item):
        return False
    if state.category != ALL_CATEGORIES and item.category != state.category:
        return False
    if item.stars < state.stars:
        return False
    if item.score_confidence < state.confidence:
        return False
    if state.featured and not item.featured:
        return False
    if state.updated:
        if item.updated_ts <= 0:
            return False
        if now_ms - item.updated_ts > state.updated * DAY_MS:
            return False
    return True


def filter_rows(items: Iterable[CatalogItem], state: CatalogState, now_ms: int) -> List[CatalogItem]:
    term = state.q.strip().lower()
    return [item for item in items if _matches(item, state, term, now_ms)]


def _collation_key(name: str) -> str:
    """Accent- and case-insensitive sort form of ``name``."""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def _name_key(item: CatalogItem):
    # raw name keeps the order total
    return (_collation_key(item.name), item.name)


_METRIC_KEYS: Dict[str, Callable[[CatalogItem], object]] = {
    "recommended": lambda item: item.recommended_score,
    "stars": lambda item: item.stars,
    "updated": lambda item: item.updated_ts,
    "name": _name_key,
}


def sort_rows(rows: Sequence[CatalogItem], sort: SortKey) -> List[CatalogItem]:
    """
    Stable sort by the key's metric and direction.

    Equal numeric values keep their incoming order; the card always shows the
    number, so no secondary key is applied.
    """
    sort = SortKey(sort)
    return sorted(rows, key=_METRIC_KEYS[sort.metric], reverse=sort.descending)


def evaluate(items: Sequence[CatalogItem], state: CatalogState, now_ms: int) -> List[CatalogItem]:
    return sort_rows(filter_rows(items, state, now_ms), state.sort)


def visible_slice(rows: Sequence[CatalogItem], limit: int) -> List[CatalogItem]:
    if limit <= 0:
        return []
    return list(rows[:limit])
