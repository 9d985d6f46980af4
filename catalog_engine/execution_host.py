from __future__ import annotations

"""
Runs catalog queries off the caller's thread.

The host and the worker are two independent tasks that only exchange plain,
JSON-compatible dicts over queues:

* ``init{items}``                               host -> worker, once
* ``query{state, visibleLimit, now, requestId}``  host -> worker, per change
* ``result{requestId, total, visible}``          worker -> host

Every query carries a strictly increasing request id. Several queries can be
in flight and their results may come back in any order; the host only hands
on the result whose id matches the most recently issued request and drops
the rest. There is no cancellation: a superseded query still finishes, its
result is just ignored on arrival.

Results are delivered on the caller's thread by :meth:`QueryHost.pump`, so
the request counter is only ever touched from one thread.
"""

import queue
import threading
import time
from typing import Callable, List, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from .catalog_state import CatalogState
from .config import SEARCH_DEBOUNCE_MS, WORKER_POLL_TIMEOUT, CatalogItem, now_ms
from .query_engine import evaluate, visible_slice
from .worker_types import (
    InitMessage,
    QueryMessage,
    ResultMessage,
    worker_message_adapter,
)

_STOP = object()


def handle_message(items: List[CatalogItem], message) -> Optional[ResultMessage]:
    """Worker-side protocol step shared by the thread and inline workers."""
    if isinstance(message, InitMessage):
        items[:] = message.items
        return None

    matched = evaluate(items, message.state, message.now)
    return ResultMessage(
        request_id=message.request_id,
        total=len(matched),
        visible=visible_slice(matched, message.visible_limit),
    )


# ---------------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------------


class QueryWorker:
    """
    Background worker thread.

    Owns its own item list, rebuilt from the ``init`` payload; the host's list
    is never referenced.
    """

    def __init__(self, outbox: "queue.Queue[dict]") -> None:
        self._inbox: "queue.Queue[object]" = queue.Queue()
        self._outbox = outbox
        self._items: List[CatalogItem] = []
        self._thread = threading.Thread(target=self._run, name="catalog-query-worker", daemon=True)
        self._thread.start()

    def post(self, payload: dict) -> None:
        self._inbox.put(payload)

    def terminate(self) -> None:
        self._inbox.put(_STOP)
        self._thread.join(timeout=1.0)

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        while True:
            payload = self._inbox.get()
            if payload is _STOP:
                return
            try:
                message = worker_message_adapter.validate_python(payload)
            except ValidationError as e:
                logger.warning("Query worker dropped malformed message: {}", e)
                continue
            try:
                result = handle_message(self._items, message)
            except Exception:
                logger.exception("Query worker failed on {} message", message.type)
                continue
            if result is not None:
                self._outbox.put(result.to_wire())


class InlineWorker:
    """Same protocol, evaluated synchronously on the caller's thread."""

    def __init__(self, outbox: "queue.Queue[dict]") -> None:
        self._outbox = outbox
        self._items: List[CatalogItem] = []

    def post(self, payload: dict) -> None:
        try:
            message = worker_message_adapter.validate_python(payload)
        except ValidationError as e:
            logger.warning("Inline worker dropped malformed message: {}", e)
            return
        result = handle_message(self._items, message)
        if result is not None:
            self._outbox.put(result.to_wire())

    def terminate(self) -> None:
        self._items = []

    @property
    def alive(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------


class QueryHost:
    """
    Caller side of the worker protocol.

    ``on_result`` is invoked only for the result of the latest request.
    """

    def __init__(
        self,
        items: Sequence[CatalogItem],
        on_result: Optional[Callable[[ResultMessage], None]] = None,
        use_worker: bool = True,
        worker_factory: Optional[Callable[["queue.Queue[dict]"], object]] = None,
    ) -> None:
        self.outbox: "queue.Queue[dict]" = queue.Queue()
        self.on_result = on_result
        self.latest_request_id = 0
        self.last_result: Optional[ResultMessage] = None
        self._items: List[CatalogItem] = list(items)
        self.worker = self._start_worker(use_worker, worker_factory)
        self.worker.post(InitMessage(items=self._items).to_wire())

    def _start_worker(self, use_worker: bool, worker_factory):
        if worker_factory is not None:
            return worker_factory(self.outbox)
        if use_worker:
            try:
                return QueryWorker(self.outbox)
            except RuntimeError as e:
                logger.warning("Could not start query worker ({}); evaluating inline.", e)
        return InlineWorker(self.outbox)

    @property
    def inline(self) -> bool:
        return isinstance(self.worker, InlineWorker)

    def _ensure_worker(self) -> None:
        """Switch to inline evaluation if the worker thread has died."""
        if self.inline or self.worker.alive:
            return
        logger.warning("Query worker is no longer running; evaluating inline.")
        self.worker = InlineWorker(self.outbox)
        self.worker.post(InitMessage(items=self._items).to_wire())

    def dispatch(self, state: CatalogState, visible_limit: int, now: Optional[int] = None) -> int:
        """Issue a query and return its request id."""
        self._ensure_worker()
        self.latest_request_id += 1
        message = QueryMessage(
            state=state,
            visible_limit=max(0, visible_limit),
            now=now_ms() if now is None else now,
            request_id=self.latest_request_id,
        )
        self.worker.post(message.to_wire())
        if self.inline:
            self.pump(timeout=0)
        return self.latest_request_id

    def receive(self, payload) -> Optional[ResultMessage]:
        """
        Accept ``payload`` only if it answers the latest request.

        Returns the parsed result when accepted, ``None`` when it was stale or
        not a result at all.
        """
        if isinstance(payload, dict):
            if payload.get("type") != "result":
                return None
            result = ResultMessage.model_validate(payload)
        else:
            result = payload

        if result.request_id != self.latest_request_id:
            logger.debug(
                "Discarding stale result {} (latest is {})",
                result.request_id,
                self.latest_request_id,
            )
            return None

        self.last_result = result
        if self.on_result is not None:
            self.on_result(result)
        return result

    def pump(self, timeout: float = WORKER_POLL_TIMEOUT) -> Optional[ResultMessage]:
        """Drain the outbox; returns the last accepted result, if any."""
        accepted: Optional[ResultMessage] = None
        block = timeout > 0
        while True:
            try:
                payload = self.outbox.get(block=block, timeout=timeout if block else None)
            except queue.Empty:
                return accepted
            block = False
            result = self.receive(payload)
            if result is not None:
                accepted = result

    def wait_for_latest(self, timeout: float = 5.0) -> Optional[ResultMessage]:
        """Pump until the latest request has been answered or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        while True:
            if self.last_result is not None and self.last_result.request_id == self.latest_request_id:
                return self.last_result
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            self.pump(timeout=min(WORKER_POLL_TIMEOUT, remaining))

    def close(self) -> None:
        self.worker.terminate()


# ---------------------------------------------------------------------------
# Input debouncing
# ---------------------------------------------------------------------------


class Debouncer:
    """
    Coalesces rapid input into one value after a quiet period.

    Clock-driven rather than timer-driven: callers pass the current time in
    milliseconds to :meth:`submit` and :meth:`flush`.
    """

    def __init__(self, quiet_ms: int = SEARCH_DEBOUNCE_MS) -> None:
        self.quiet_ms = quiet_ms
        self._pending: Optional[str] = None
        self._last_input_ms: Optional[int] = None

    @property
    def pending(self) -> bool:
        return self._last_input_ms is not None

    def submit(self, value: str, at_ms: int) -> None:
        self._pending = value
        self._last_input_ms = at_ms

    def flush(self, at_ms: int) -> Optional[str]:
        """The pending value once the quiet period has elapsed, else ``None``."""
        if self._last_input_ms is None:
            return None
        if at_ms - self._last_input_ms < self.quiet_ms:
            return None
        value = self._pending
        self._pending = None
        self._last_input_ms = None
        return value
