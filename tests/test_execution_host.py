import queue

from catalog_engine import execution_host
from catalog_engine.catalog_state import CatalogState
from catalog_engine.execution_host import Debouncer, InlineWorker, QueryHost
from catalog_engine.worker_types import ResultMessage, worker_message_adapter

from catalog_fixtures import NOW_MS


class RecordingWorker:
    """Stands in for the worker thread; results are pushed by the test."""

    def __init__(self, outbox):
        self.outbox = outbox
        self.posted = []
        self.terminated = False
        self.alive = True

    def post(self, payload):
        self.posted.append(payload)

    def terminate(self):
        self.terminated = True


def _result(request_id, total=0):
    return ResultMessage(request_id=request_id, total=total, visible=[]).to_wire()


def test_out_of_order_results_keep_latest_only(catalog_items):
    rendered = []
    host = QueryHost(catalog_items, on_result=rendered.append, worker_factory=RecordingWorker)

    first = host.dispatch(CatalogState(), 24, now=NOW_MS)
    second = host.dispatch(CatalogState(q="solar"), 24, now=NOW_MS)
    assert (first, second) == (1, 2)

    host.outbox.put(_result(2, total=1))
    host.outbox.put(_result(1, total=4))
    host.pump(timeout=0)

    assert [r.request_id for r in rendered] == [2]
    assert host.last_result.total == 1


def test_stale_result_is_discarded_directly(catalog_items):
    host = QueryHost(catalog_items, worker_factory=RecordingWorker)
    host.dispatch(CatalogState(), 24, now=NOW_MS)
    host.dispatch(CatalogState(), 24, now=NOW_MS)
    assert host.receive(_result(1)) is None
    assert host.receive(_result(2)).request_id == 2
    assert host.receive({"type": "init", "items": []}) is None


def test_worker_receives_plain_copies(catalog_items):
    host = QueryHost(catalog_items, worker_factory=RecordingWorker)
    host.dispatch(CatalogState(stars=1000), 5, now=NOW_MS)

    init, query = host.worker.posted
    assert init["type"] == "init"
    assert init["items"][0]["slug"] == "alpha"
    assert "recommendedScore" in init["items"][0]
    assert query == {
        "type": "query",
        "state": {
            "q": "",
            "category": "all",
            "stars": 1000,
            "updated": 0,
            "confidence": 0,
            "sort": "recommended-desc",
            "featured": False,
        },
        "visibleLimit": 5,
        "now": NOW_MS,
        "requestId": 1,
    }
    parsed = worker_message_adapter.validate_python(query)
    assert parsed.state.stars == 1000

    host.close()
    assert host.worker.terminated


def test_thread_worker_answers_latest(catalog_items):
    host = QueryHost(catalog_items)
    try:
        assert not host.inline
        host.dispatch(CatalogState(), 24, now=NOW_MS)
        host.dispatch(CatalogState(category="Energy"), 1, now=NOW_MS)
        result = host.wait_for_latest(timeout=5.0)
        assert result is not None
        assert result.request_id == 2
        assert result.total == 2
        assert [item.slug for item in result.visible] == ["alpha"]
    finally:
        host.close()


def test_inline_fallback_answers_synchronously(catalog_items):
    rendered = []
    host = QueryHost(catalog_items, on_result=rendered.append, use_worker=False)
    assert host.inline
    host.dispatch(CatalogState(featured=True), 24, now=NOW_MS)
    assert len(rendered) == 1
    assert rendered[0].total == 1


def test_inline_worker_drops_malformed_messages():
    outbox = queue.Queue()
    worker = InlineWorker(outbox)
    worker.post({"type": "bogus"})
    worker.post({"type": "query", "requestId": "not-a-number"})
    assert outbox.empty()


def test_debouncer_waits_for_quiet_period():
    debouncer = Debouncer(quiet_ms=180)
    debouncer.submit("s", at_ms=0)
    debouncer.submit("so", at_ms=100)
    assert debouncer.flush(at_ms=200) is None
    assert debouncer.pending
    assert debouncer.flush(at_ms=280) == "so"
    assert not debouncer.pending
    assert debouncer.flush(at_ms=1000) is None


def test_dead_worker_falls_back_to_inline(catalog_items):
    rendered = []
    host = QueryHost(catalog_items, on_result=rendered.append, worker_factory=RecordingWorker)
    host.worker.alive = False

    request_id = host.dispatch(CatalogState(category="Energy"), 24, now=NOW_MS)

    assert host.inline
    assert [r.request_id for r in rendered] == [request_id]
    assert rendered[0].total == 2


def test_worker_survives_a_failing_query(catalog_items, monkeypatch):
    real_handle = execution_host.handle_message

    def flaky_handle(items, message):
        if getattr(message, "request_id", None) == 1:
            raise RuntimeError("boom")
        return real_handle(items, message)

    monkeypatch.setattr(execution_host, "handle_message", flaky_handle)
    host = QueryHost(catalog_items)
    try:
        host.dispatch(CatalogState(), 24, now=NOW_MS)
        assert host.wait_for_latest(timeout=0.5) is None
        assert host.worker.alive

        host.dispatch(CatalogState(featured=True), 24, now=NOW_MS)
        result = host.wait_for_latest(timeout=5.0)
        assert result is not None
        assert result.total == 1
    finally:
        host.close()
