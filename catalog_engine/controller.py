from __future__ import annotations

"""
Session controller for the interactive catalog.

One :class:`CatalogController` owns everything that changes while a user
browses: the current :class:`CatalogState`, the compare selection, the
"load more" limit, the debounced search box and the query host with its
request counter. There is no module-level mutable state; the pure state and
score modules stay testable on their own.

The URL is a mirror of state, not its source: :meth:`query_string` is derived
after every change and only :meth:`navigate` (back/forward, shared links)
reads it back.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlencode

from loguru import logger

from .catalog_build import load_catalog_snapshot
from .catalog_state import (
    EMPTY_STATE_ACTION_LABELS,
    CatalogState,
    EmptyStateAction,
    FilterChip,
    active_filter_chips,
    apply_empty_state_action,
    apply_preset,
    clear_filter,
    default_state,
    deserialize_state,
    empty_state_recovery_actions,
    parse_query_params,
    serialize_state,
)
from .compare import CompareRow, CompareSelection, compare_rows, deserialize_compare
from .config import (
    CATALOG_SNAPSHOT_PATH,
    MIN_SHARE_ITEMS,
    PAGE_SIZE,
    SHARE_READY_STATUS,
    SHARE_REFUSED_STATUS,
    CatalogItem,
    now_ms,
)
from .execution_host import Debouncer, QueryHost
from .score_model import SCORE_HELP_TEXT
from .worker_types import ResultMessage


@dataclass
class CatalogView:
    """Everything a renderer needs for one result."""

    total: int
    visible: List[CatalogItem]
    chips: List[FilterChip]
    empty_actions: List[EmptyStateAction] = field(default_factory=list)
    compare_slugs: List[str] = field(default_factory=list)
    compare_open: bool = False

    @property
    def has_more(self) -> bool:
        return self.total > len(self.visible)

    @property
    def empty_action_labels(self) -> List[str]:
        return [EMPTY_STATE_ACTION_LABELS[action] for action in self.empty_actions]

    @property
    def score_help(self) -> str:
        return SCORE_HELP_TEXT

    @property
    def summary(self) -> str:
        plural = "" if self.total == 1 else "s"
        text = f"{self.total:,} scored integration{plural} matched"
        if self.total != len(self.visible):
            text += f" (showing first {len(self.visible)})"
        return text


@dataclass
class CompareShare:
    """Outcome of a share request; ``query`` is None when sharing was refused."""

    query: Optional[str]
    status: str

    @property
    def ok(self) -> bool:
        return self.query is not None


class CatalogController:
    """
    Owns one browsing session over a loaded catalog.

    Search input is debounced but not timer-driven: :meth:`type_query` only
    records keystrokes, and the query runs on the first :meth:`tick` after
    the input has been quiet for the debounce period. Embedders must call
    :meth:`tick` periodically (e.g. from their event loop), or the typed
    search never runs.
    """

    def __init__(
        self,
        items: Sequence[CatalogItem],
        query_string: str = "",
        categories: Optional[Iterable[str]] = None,
        page_size: int = PAGE_SIZE,
        use_worker: bool = True,
        worker_factory=None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.items: List[CatalogItem] = list(items)
        self.by_slug: Dict[str, CatalogItem] = {item.slug: item for item in self.items}
        if categories is None:
            categories = {item.category for item in self.items}
        self.categories: List[str] = sorted(categories)

        self.page_size = max(1, page_size)
        self.visible_limit = self.page_size
        self.clock = clock
        self.view: Optional[CatalogView] = None

        self.state: CatalogState = deserialize_state(query_string, self.categories)
        self.compare = CompareSelection()
        self.compare_open = False
        self._search = Debouncer()

        self.host = QueryHost(
            self.items,
            on_result=self._render,
            use_worker=use_worker,
            worker_factory=worker_factory,
        )
        self._seed_compare_from(query_string)
        logger.info(
            "Catalog controller ready: {} items, {} categories, worker={}",
            len(self.items),
            len(self.categories),
            "inline" if self.host.inline else "thread",
        )
        self.refresh(reset_page=False)

    @classmethod
    def from_snapshot(
        cls,
        path: Path = CATALOG_SNAPSHOT_PATH,
        query_string: str = "",
        **kwargs,
    ) -> "CatalogController":
        """Build over a snapshot file; a failed load raises CatalogLoadError."""
        return cls(load_catalog_snapshot(path), query_string=query_string, **kwargs)

    # -----------------------
    # Query dispatch / results
    # -----------------------

    def refresh(self, reset_page: bool = True) -> int:
        if reset_page:
            self.visible_limit = self.page_size
        return self.host.dispatch(self.state, self.visible_limit, now=self.clock())

    def wait(self, timeout: float = 5.0) -> Optional[CatalogView]:
        """Block until the latest query has been rendered (or ``timeout``)."""
        self.host.wait_for_latest(timeout=timeout)
        return self.view

    def _render(self, result: ResultMessage) -> None:
        self.view = CatalogView(
            total=result.total,
            visible=list(result.visible),
            chips=active_filter_chips(self.state),
            empty_actions=empty_state_recovery_actions(self.state) if result.total == 0 else [],
            compare_slugs=self.compare.slugs,
            compare_open=self.compare_open,
        )

    # -----------------------
    # State changes
    # -----------------------

    def set_state(self, state: CatalogState, reset_page: bool = True) -> int:
        self.state = state
        return self.refresh(reset_page)

    def update(self, **changes) -> int:
        return self.set_state(self.state.replace(**changes))

    def apply_preset(self, name: str) -> int:
        return self.set_state(apply_preset(name, self.state), reset_page=False)

    def reset_filters(self) -> int:
        return self.set_state(default_state(), reset_page=False)

    def clear_filter(self, key: str) -> int:
        return self.set_state(clear_filter(self.state, key))

    def apply_empty_state_action(self, action) -> int:
        return self.set_state(apply_empty_state_action(self.state, action))

    def load_more(self) -> int:
        self.visible_limit += self.page_size
        return self.refresh(reset_page=False)

    def type_query(self, text: str, at_ms: Optional[int] = None) -> None:
        """Record a keystroke; the query runs once input goes quiet (see :meth:`tick`)."""
        self._search.submit(text, self.clock() if at_ms is None else at_ms)

    def tick(self, at_ms: Optional[int] = None) -> Optional[int]:
        value = self._search.flush(self.clock() if at_ms is None else at_ms)
        if value is None:
            return None
        return self.update(q=value)

    # -----------------------
    # Compare selection
    # -----------------------

    def toggle_compare(self, slug: str) -> bool:
        if slug not in self.by_slug:
            logger.debug("Ignoring compare toggle for unknown slug {}", slug)
            return False
        added = self.compare.toggle(slug)
        self.refresh(reset_page=False)
        return added

    def remove_compare(self, slug: str) -> None:
        self.compare.remove(slug)
        self.refresh(reset_page=False)

    def clear_compare(self) -> None:
        self.compare.clear()
        self.compare_open = False
        self.refresh(reset_page=False)

    def close_compare(self) -> None:
        self.compare_open = False
        self.refresh(reset_page=False)

    def share_compare(self) -> CompareShare:
        """The shareable query string, once at least two integrations are selected."""
        if len(self.compare) < MIN_SHARE_ITEMS:
            return CompareShare(query=None, status=SHARE_REFUSED_STATUS)
        return CompareShare(query=self.query_string(), status=SHARE_READY_STATUS)

    def compared_items(self) -> List[CatalogItem]:
        return self.compare.resolve(self.by_slug)

    def compare_rows(self) -> List[CompareRow]:
        return compare_rows(self.compared_items())

    def _seed_compare_from(self, query_string: str) -> int:
        requested = deserialize_compare(parse_query_params(query_string or "").get("compare"))
        unknown = [slug for slug in requested if slug not in self.by_slug]
        if unknown:
            logger.info("Ignoring unknown compare slugs from URL: {}", unknown)
        size = self.compare.seed(requested, self.by_slug)
        # a shared link with a real comparison opens it straight away
        if size >= MIN_SHARE_ITEMS:
            self.compare_open = True
        return size

    # -----------------------
    # URL mirror
    # -----------------------

    def query_string(self) -> str:
        query = serialize_state(self.state)
        compare_value = self.compare.to_query_value()
        if not compare_value:
            return query
        extra = urlencode({"compare": compare_value})
        return f"{query}&{extra}" if query else extra

    def navigate(self, query_string: str) -> int:
        """Back/forward or shared link: rebuild state from the URL."""
        self.state = deserialize_state(query_string, self.categories)
        self.compare.clear()
        self.compare_open = False
        self._seed_compare_from(query_string)
        return self.refresh(reset_page=False)

    def close(self) -> None:
        self.host.close()
