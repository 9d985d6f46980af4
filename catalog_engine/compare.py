from __future__ import annotations

"""
Bounded compare selection.

Holds at most ``MAX_COMPARE_ITEMS`` slugs in insertion order. Adding one more
evicts the oldest. The selection is shared through the ``compare`` URL
parameter as a comma-joined list.
"""

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Set

from .config import MAX_COMPARE_ITEMS, CatalogItem
from .score_model import maintenance_signal, round1


def serialize_compare(slugs: Iterable[str]) -> str:
    """Trimmed, de-duplicated, capped, comma-joined."""
    unique: List[str] = []
    for slug in slugs:
        slug = slug.strip()
        if slug and slug not in unique:
            unique.append(slug)
    return ",".join(unique[:MAX_COMPARE_ITEMS])


def deserialize_compare(value: Optional[str]) -> List[str]:
    """
    Parse a ``compare`` value into at most three unique slugs.

    String-level only: whether a slug exists is decided later, when the
    selection is seeded against the loaded catalog.
    """
    if not value:
        return []
    unique: List[str] = []
    for part in value.split(","):
        slug = part.strip()
        if not slug or slug in unique:
            continue
        unique.append(slug)
        if len(unique) >= MAX_COMPARE_ITEMS:
            break
    return unique


class CompareSelection:
    def __init__(self, capacity: int = MAX_COMPARE_ITEMS) -> None:
        self.capacity = capacity
        self._order: List[str] = []
        self._members: Set[str] = set()

    def __contains__(self, slug: object) -> bool:
        return slug in self._members

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self):
        return iter(list(self._order))

    @property
    def slugs(self) -> List[str]:
        return list(self._order)

    def _add(self, slug: str) -> None:
        if len(self._order) >= self.capacity:
            oldest = self._order.pop(0)
            self._members.discard(oldest)
        self._order.append(slug)
        self._members.add(slug)

    def toggle(self, slug: str) -> bool:
        """Remove ``slug`` if selected, else add it. Returns True when added."""
        if slug in self._members:
            self.remove(slug)
            return False
        self._add(slug)
        return True

    def remove(self, slug: str) -> None:
        if slug not in self._members:
            return
        self._members.discard(slug)
        self._order.remove(slug)

    def clear(self) -> None:
        self._order.clear()
        self._members.clear()

    def seed(self, slugs: Sequence[str], known: Mapping[str, CatalogItem]) -> int:
        """
        Add shared slugs that exist in ``known``; unknown ones are skipped.

        Stops once the selection is full. Returns the resulting size.
        """
        for slug in slugs:
            if len(self._order) >= self.capacity:
                break
            if slug not in known or slug in self._members:
                continue
            self._add(slug)
        return len(self._order)

    def to_query_value(self) -> str:
        return serialize_compare(self._order)

    def resolve(self, known: Mapping[str, CatalogItem]) -> List[CatalogItem]:
        """Selected items in insertion order; slugs missing from ``known`` are skipped."""
        return [known[slug] for slug in self._order if slug in known]


@dataclass
class CompareRow:
    """Side-by-side figures for one compared integration."""

    slug: str
    name: str
    repo: str
    score: float
    confidence: float
    maintenance: float
    stars: int
    open_issues: int
    updated_at: Optional[str]


def compare_rows(items: Iterable[CatalogItem]) -> List[CompareRow]:
    rows: List[CompareRow] = []
    for item in items:
        rows.append(
            CompareRow(
                slug=item.slug,
                name=item.name,
                repo=item.repo,
                score=item.recommended_score,
                confidence=item.score_confidence,
                maintenance=round1(maintenance_signal(item.open_issues, item.stars) * 100),
                stars=item.stars,
                open_issues=item.open_issues,
                updated_at=item.updated_at,
            )
        )
    return rows
