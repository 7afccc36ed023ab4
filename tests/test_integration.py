"""Integration tests: full SDK lifecycle through the written trace."""

import io
import threading
from collections import defaultdict

import ftflayer
import ftflayer._sdk as sdk_mod
from ftflayer import DecodedEvent, RecordKind, read_trace

BEGIN = RecordKind.DURATION_BEGIN
END = RecordKind.DURATION_END


def setup_function() -> None:
    sdk_mod._sdk_instance = None


def teardown_function() -> None:
    ftflayer.shutdown()


def test_full_lifecycle() -> None:
    """init, trace, nested spans and events all land in the trace."""
    sink = io.BytesIO()
    ftflayer.init(sink, provider_name="integration-test")

    @ftflayer.trace(name="handle-request", fields={"ftf": True, "category": "server"})
    def handle_request() -> str:
        with ftflayer.span("validate-input") as s:
            s.set_attribute("input_length", 100)

        with ftflayer.span("run-inference", category="model"):
            with ftflayer.span("tokenize"):
                ftflayer.event("tokens", count=12)
            with ftflayer.span("forward-pass") as inner:
                inner.set_attribute("model", "llama-3-8b")

        return "done"

    assert handle_request() == "done"
    ftflayer.shutdown()

    trace = read_trace(sink.getvalue())
    assert trace.provider_name == "integration-test"
    assert [(e.kind, e.name, e.category) for e in trace.events] == [
        (BEGIN, "handle-request", "server"),
        (BEGIN, "validate-input", "server"),
        (END, "validate-input", "server"),
        (BEGIN, "run-inference", "model"),
        (BEGIN, "tokenize", "model"),
        (RecordKind.INSTANT, "tokens", "model"),
        (END, "tokenize", "model"),
        (BEGIN, "forward-pass", "model"),
        (END, "forward-pass", "model"),
        (END, "run-inference", "model"),
        (END, "handle-request", "server"),
    ]
    by_kind_name = {(e.kind, e.name): e for e in trace.events}
    assert by_kind_name[(END, "validate-input")].arguments == {"input_length": 100}
    assert by_kind_name[(END, "forward-pass")].arguments == {"model": "llama-3-8b"}
    assert by_kind_name[(RecordKind.INSTANT, "tokens")].arguments == {"count": 12}
    assert len({e.thread_ref for e in trace.events}) == 1


def test_deep_nesting() -> None:
    sink = io.BytesIO()
    ftflayer.init(sink)

    depth = 10

    def nest(level: int) -> None:
        if level == 0:
            return
        with ftflayer.span(f"level-{level}", ftf=level == depth):
            nest(level - 1)

    nest(depth)
    ftflayer.shutdown()

    events = read_trace(sink.getvalue()).events
    assert len(events) == 2 * depth
    begins = [e.name for e in events if e.kind is BEGIN]
    ends = [e.name for e in events if e.kind is END]
    assert begins == [f"level-{i}" for i in range(depth, 0, -1)]
    assert ends == list(reversed(begins))


def test_error_in_nested_span() -> None:
    sink = io.BytesIO()
    ftflayer.init(sink)

    try:
        with ftflayer.span("outer", ftf=True):
            with ftflayer.span("inner"):
                raise ValueError("boom")
    except ValueError:
        pass
    ftflayer.shutdown()

    ends = {e.name: e for e in read_trace(sink.getvalue()).events if e.kind is END}
    assert ends["inner"].arguments == {"error": "boom"}
    assert ends["outer"].arguments == {"error": "boom"}


def test_concurrent_threads_keep_their_own_order() -> None:
    """Two threads, many spans each, one shared layer."""
    sink = io.BytesIO()
    layer = ftflayer.init(sink)
    n_spans = 1000
    barrier = threading.Barrier(2)

    def worker(worker_id: int) -> None:
        barrier.wait()
        for i in range(n_spans):
            with ftflayer.span(f"w{worker_id}-span-{i}", ftf=True):
                pass

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    ftflayer.shutdown()

    trace = read_trace(sink.getvalue())
    assert layer.emitter.written_count == 2 * 2 * n_spans
    assert layer.emitter.failure_count == 0

    per_thread: dict[int, list[DecodedEvent]] = defaultdict(list)
    for e in trace.events:
        per_thread[e.thread_ref].append(e)
    assert len(per_thread) == 2
    assert len(trace.threads) == 2

    for events in per_thread.values():
        assert len(events) == 2 * n_spans
        prefix = events[0].name.split("-", 1)[0]
        for i in range(n_spans):
            begin, end = events[2 * i], events[2 * i + 1]
            assert (begin.kind, end.kind) == (BEGIN, END)
            assert begin.name == end.name == f"{prefix}-span-{i}"
            assert begin.name_ref == end.name_ref != 0
            assert end.timestamp >= begin.timestamp

    # Every distinct string got its own index
    assert len(set(trace.strings.values())) == len(trace.strings)
    assert len(trace.strings) == 2 * n_spans + 1
