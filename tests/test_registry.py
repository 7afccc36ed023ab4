"""Tests for _registry module."""

import threading

from ftflayer._registry import SpanRegistry
from ftflayer._types import ArgType, ArgumentValue


def _arg(name: str, value: int) -> ArgumentValue:
    return ArgumentValue(name, ArgType.INT64, value)


def test_create_and_get() -> None:
    reg = SpanRegistry()
    state = reg.create(1, "span", "cat", [_arg("a", 1)])
    assert reg.get(1) is state
    assert 1 in reg
    assert len(reg) == 1
    assert reg.get(None) is None
    assert reg.get(2) is None


def test_first_enter_returns_state_once() -> None:
    reg = SpanRegistry()
    reg.create(1, "span", "cat")
    state = reg.enter(1, timestamp=10, thread_koid=3)
    assert state is not None
    assert state.begun
    assert state.start_timestamp == 10
    assert state.thread_koid == 3

    assert reg.enter(1, timestamp=20, thread_koid=4) is None
    assert state.start_timestamp == 10
    assert state.thread_koid == 3
    assert state.depth == 2


def test_enter_untracked_returns_none() -> None:
    reg = SpanRegistry()
    assert reg.enter(99, timestamp=0, thread_koid=1) is None


def test_exit_decrements_depth_and_tolerates_extra_exit() -> None:
    reg = SpanRegistry()
    state = reg.create(1, "span", "cat")
    reg.enter(1, 0, 1)
    reg.exit(1)
    assert state.depth == 0
    reg.exit(1)
    assert state.depth == 0
    reg.exit(99)


def test_record_before_and_after_begin() -> None:
    reg = SpanRegistry()
    state = reg.create(1, "span", "cat", [_arg("a", 1)])
    assert reg.record(1, [_arg("b", 2)])
    reg.enter(1, 0, 1)
    assert reg.record(1, [_arg("c", 3)])

    assert [a.name for a in state.args] == ["a", "b"]
    assert [a.name for a in state.late_args] == ["c"]
    assert reg.record(99, [_arg("x", 0)]) is False


def test_close_removes_state() -> None:
    reg = SpanRegistry()
    state = reg.create(1, "span", "cat")
    assert reg.close(1) is state
    assert 1 not in reg
    assert reg.close(1) is None


def test_concurrent_create_and_close() -> None:
    reg = SpanRegistry()
    n_threads = 4
    n_per_thread = 500

    def worker(base: int) -> None:
        for i in range(n_per_thread):
            span_id = base * n_per_thread + i
            reg.create(span_id, "s", "c")
            reg.enter(span_id, 0, base)
            reg.exit(span_id)
            assert reg.close(span_id) is not None

    threads = [threading.Thread(target=worker, args=(b,)) for b in range(n_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(reg) == 0
