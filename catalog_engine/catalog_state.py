from __future__ import annotations

"""
Catalog filter/sort state and its URL representation.

A :class:`CatalogState` is a frozen value: every interaction builds a new
one. Bucketed numeric fields are coerced on construction, so a state object
can never hold an off-bucket value no matter where its inputs came from
(controls, presets or a hand-edited URL).

URL parsing is deliberately forgiving: garbage becomes the default value,
out-of-range numbers are clamped and snapped, unknown names fall back to the
default. Nothing in here raises on user input.
"""

import math
from bisect import bisect_left
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlencode

from pydantic import BaseModel, ConfigDict, field_validator

from .config import (
    ALL_CATEGORIES,
    CONFIDENCE_BUCKETS,
    PRESETS,
    STARS_BUCKETS,
    UPDATED_BUCKETS,
)


class SortKey(str, Enum):
    RECOMMENDED_DESC = "recommended-desc"
    STARS_DESC = "stars-desc"
    UPDATED_DESC = "updated-desc"
    NAME_ASC = "name-asc"
    NAME_DESC = "name-desc"
    STARS_ASC = "stars-asc"

    @property
    def metric(self) -> str:
        return self.value.rsplit("-", 1)[0]

    @property
    def descending(self) -> bool:
        return self.value.endswith("-desc")


SORT_LABELS: Dict[SortKey, str] = {
    SortKey.RECOMMENDED_DESC: "Recommended",
    SortKey.STARS_DESC: "Most stars",
    SortKey.UPDATED_DESC: "Recently updated",
    SortKey.NAME_ASC: "Name A-Z",
    SortKey.NAME_DESC: "Name Z-A",
    SortKey.STARS_ASC: "Fewest stars",
}

DEFAULT_SORT = SortKey.RECOMMENDED_DESC

# Serialization (and chip) order. Fixed so query strings are deterministic.
FILTER_KEYS: Tuple[str, ...] = (
    "q",
    "category",
    "stars",
    "updated",
    "confidence",
    "sort",
    "featured",
)


# ---------------------------------------------------------------------------
# Bucketing
# ---------------------------------------------------------------------------


def nearest_bucket(value: float, buckets: Sequence[int]) -> int:
    """
    Clamp ``value`` into the bucket range and return the closest bucket.

    ``buckets`` must be sorted ascending. On an exact tie the lower bucket
    wins (60 between 30 and 90 -> 30).
    """
    lo, hi = buckets[0], buckets[-1]
    if value <= lo:
        return lo
    if value >= hi:
        return hi

    idx = bisect_left(buckets, value)
    upper = buckets[idx]
    lower = buckets[idx - 1]
    if value - lower <= upper - value:
        return lower
    return upper


def lower_bucket(value: int, buckets: Sequence[int]) -> int:
    """The bucket one step below ``value`` (or the first bucket)."""
    idx = bisect_left(buckets, value)
    return buckets[max(0, idx - 1)]


def _parse_number(raw) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        num = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            num = float(text)
        except ValueError:
            return None
    if not math.isfinite(num):
        return None
    return num


def coerce_bucket(raw, buckets: Sequence[int]) -> int:
    """Any raw value -> an allowed bucket. Unparsable input -> first bucket."""
    num = _parse_number(raw)
    if num is None:
        return buckets[0]
    return nearest_bucket(num, buckets)


def parse_sort_key(raw) -> SortKey:
    if isinstance(raw, SortKey):
        return raw
    try:
        return SortKey(str(raw))
    except ValueError:
        return DEFAULT_SORT


# ---------------------------------------------------------------------------
# State model
# ---------------------------------------------------------------------------


class CatalogState(BaseModel):
    """Canonical filter/sort configuration for one catalog view."""

    model_config = ConfigDict(frozen=True)

    q: str = ""
    category: str = ALL_CATEGORIES
    stars: int = STARS_BUCKETS[0]
    updated: int = UPDATED_BUCKETS[0]
    confidence: int = CONFIDENCE_BUCKETS[0]
    sort: SortKey = DEFAULT_SORT
    featured: bool = False

    @field_validator("q", mode="before")
    @classmethod
    def _trim_query(cls, value) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("category", mode="before")
    @classmethod
    def _category_or_all(cls, value) -> str:
        text = "" if value is None else str(value)
        return text or ALL_CATEGORIES

    @field_validator("stars", mode="before")
    @classmethod
    def _stars_bucket(cls, value) -> int:
        return coerce_bucket(value, STARS_BUCKETS)

    @field_validator("updated", mode="before")
    @classmethod
    def _updated_bucket(cls, value) -> int:
        return coerce_bucket(value, UPDATED_BUCKETS)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_bucket(cls, value) -> int:
        return coerce_bucket(value, CONFIDENCE_BUCKETS)

    @field_validator("sort", mode="before")
    @classmethod
    def _known_sort(cls, value) -> SortKey:
        return parse_sort_key(value)

    def replace(self, **changes) -> "CatalogState":
        """New state with ``changes`` applied and re-validated."""
        return CatalogState(**{**self.model_dump(), **changes})


class FilterChip(BaseModel):
    """One removable indicator for a non-default field."""

    key: str
    label: str


class EmptyStateAction(str, Enum):
    CLEAR_UPDATED = "clear-updated"
    LOWER_CONFIDENCE = "lower-confidence"
    DISABLE_FEATURED = "disable-featured"
    RESET_ALL = "reset-all"


EMPTY_STATE_ACTION_LABELS: Dict[EmptyStateAction, str] = {
    EmptyStateAction.CLEAR_UPDATED: "Remove updated filter",
    EmptyStateAction.LOWER_CONFIDENCE: "Lower confidence threshold",
    EmptyStateAction.DISABLE_FEATURED: "Show non-featured integrations",
    EmptyStateAction.RESET_ALL: "Reset all filters",
}


_DEFAULT_STATE = CatalogState()


def default_state() -> CatalogState:
    return _DEFAULT_STATE


def apply_preset(name: str, base_state: Optional[CatalogState] = None) -> CatalogState:
    """
    Default state plus one named override bundle.

    ``base_state`` is discarded: presets always start from the default so the
    outcome does not depend on what was selected before. Unknown names give
    the plain default state.
    """
    overrides = PRESETS.get(name)
    if overrides is None:
        return default_state()
    return default_state().replace(**overrides)


# ---------------------------------------------------------------------------
# URL serialization
# ---------------------------------------------------------------------------


def _non_default_pairs(state: CatalogState) -> List[Tuple[str, str]]:
    default = default_state()
    pairs: List[Tuple[str, str]] = []
    for key in FILTER_KEYS:
        value = getattr(state, key)
        if value == getattr(default, key):
            continue
        if key == "featured":
            pairs.append((key, "1"))
        elif key == "sort":
            pairs.append((key, value.value))
        else:
            pairs.append((key, str(value)))
    return pairs


def serialize_state(state: CatalogState) -> str:
    """Shortest query string (no leading '?') that restores ``state``."""
    return urlencode(_non_default_pairs(state))


def parse_query_params(query: str) -> Dict[str, str]:
    """First value of every parameter; blank values are kept as ''."""
    if query.startswith("?"):
        query = query[1:]
    parsed = parse_qs(query, keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items() if values}


def deserialize_state(query: str, known_categories: Iterable[str]) -> CatalogState:
    params = parse_query_params(query or "")
    known = set(known_categories)

    category = params.get("category") or ALL_CATEGORIES
    if category != ALL_CATEGORIES and category not in known:
        category = ALL_CATEGORIES

    return CatalogState(
        q=params.get("q", ""),
        category=category,
        stars=params.get("stars"),
        updated=params.get("updated"),
        confidence=params.get("confidence"),
        sort=params.get("sort", DEFAULT_SORT),
        featured=params.get("featured") == "1",
    )


# ---------------------------------------------------------------------------
# Filter chips & empty-state recovery
# ---------------------------------------------------------------------------


def _chip_label(state: CatalogState, key: str) -> str:
    if key == "q":
        return f'Search: "{state.q}"'
    if key == "category":
        return f"Category: {state.category}"
    if key == "stars":
        return f"{state.stars:,}+ stars"
    if key == "updated":
        return f"Updated in last {state.updated} days"
    if key == "confidence":
        return f"Confidence {state.confidence}+"
    if key == "sort":
        return f"Sort: {SORT_LABELS[state.sort]}"
    return "Featured only"


def active_filter_chips(state: CatalogState) -> List[FilterChip]:
    default = default_state()
    return [
        FilterChip(key=key, label=_chip_label(state, key))
        for key in FILTER_KEYS
        if getattr(state, key) != getattr(default, key)
    ]


def clear_filter(state: CatalogState, key: str) -> CatalogState:
    """Reset exactly one field; unknown keys leave ``state`` untouched."""
    if key not in FILTER_KEYS:
        return state
    return state.model_copy(update={key: getattr(default_state(), key)})


def empty_state_recovery_actions(state: CatalogState) -> List[EmptyStateAction]:
    """Relaxations to offer when nothing matched, narrowest first."""
    actions: List[EmptyStateAction] = []
    if state.updated > 0:
        actions.append(EmptyStateAction.CLEAR_UPDATED)
    if state.confidence > 0:
        actions.append(EmptyStateAction.LOWER_CONFIDENCE)
    if state.featured:
        actions.append(EmptyStateAction.DISABLE_FEATURED)
    if not actions:
        actions.append(EmptyStateAction.RESET_ALL)
    return actions


def apply_empty_state_action(state: CatalogState, action) -> CatalogState:
    try:
        action = EmptyStateAction(action)
    except ValueError:
        return state

    if action is EmptyStateAction.CLEAR_UPDATED:
        return state.model_copy(update={"updated": UPDATED_BUCKETS[0]})
    if action is EmptyStateAction.LOWER_CONFIDENCE:
        return state.model_copy(
            update={"confidence": lower_bucket(state.confidence, CONFIDENCE_BUCKETS)}
        )
    if action is EmptyStateAction.DISABLE_FEATURED:
        return state.model_copy(update={"featured": False})
    return default_state()
