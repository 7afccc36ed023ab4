"""Registry of open spans, keyed by the host's opaque span identity."""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field

from ftflayer._types import ArgumentValue

logger = logging.getLogger("ftflayer.registry")


@dataclass
class SpanRecordState:
    """Bookkeeping for one tracked span between creation and close.

    ``args`` go out with the DurationBegin record. Once Begin has been
    emitted, newly recorded attributes collect in ``late_args`` and go out
    with DurationEnd instead.

    ``lock`` orders the Begin write against close: Begin is written only
    while ``closed`` is False, and End only if ``begin_written`` is True.
    """

    name: str
    category: str
    args: list[ArgumentValue] = field(default_factory=list)
    late_args: list[ArgumentValue] = field(default_factory=list)
    depth: int = 0
    begun: bool = False
    start_timestamp: int = 0
    thread_koid: int = 0
    begin_written: bool = False
    closed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class SpanRegistry:
    """Thread-safe identity -> SpanRecordState map.

    Only eligible spans are stored; any identity not present is treated as
    untracked and its callbacks are ignored.
    """

    def __init__(self) -> None:
        self._states: dict[Hashable, SpanRecordState] = {}
        self._lock = threading.Lock()

    def get(self, span_id: Hashable | None) -> SpanRecordState | None:
        """Return the state for ``span_id`` without locking (single dict read)."""
        if span_id is None:
            return None
        return self._states.get(span_id)

    def create(
        self,
        span_id: Hashable,
        name: str,
        category: str,
        args: Iterable[ArgumentValue] = (),
    ) -> SpanRecordState:
        state = SpanRecordState(name=name, category=category, args=list(args))
        with self._lock:
            if span_id in self._states:
                logger.debug("Span %r created twice; replacing previous state", span_id)
            self._states[span_id] = state
        return state

    def enter(
        self,
        span_id: Hashable,
        timestamp: int,
        thread_koid: int,
    ) -> SpanRecordState | None:
        """Mark the span entered.

        Returns the state only on the first enter, which is the one that
        must emit DurationBegin. Re-entries and untracked ids return None.
        """
        with self._lock:
            state = self._states.get(span_id)
            if state is None:
                return None
            state.depth += 1
            if state.begun:
                return None
            state.begun = True
            state.start_timestamp = timestamp
            state.thread_koid = thread_koid
            return state

    def exit(self, span_id: Hashable) -> None:
        with self._lock:
            state = self._states.get(span_id)
            if state is None:
                return
            if state.depth == 0:
                logger.debug("Exit without matching enter for span %r", span_id)
                return
            state.depth -= 1

    def record(self, span_id: Hashable, args: Iterable[ArgumentValue]) -> bool:
        """Append attributes recorded after creation. False if untracked."""
        with self._lock:
            state = self._states.get(span_id)
            if state is None:
                return False
            target = state.late_args if state.begun else state.args
            target.extend(args)
            return True

    def close(self, span_id: Hashable) -> SpanRecordState | None:
        """Remove and return the span's state, or None if it was not tracked."""
        with self._lock:
            return self._states.pop(span_id, None)

    def __contains__(self, span_id: object) -> bool:
        return span_id in self._states

    def __len__(self) -> int:
        return len(self._states)
