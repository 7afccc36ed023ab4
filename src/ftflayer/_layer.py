"""FtfLayer: the callback surface the host tracing framework drives."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Hashable, Mapping
from typing import TYPE_CHECKING, Any, BinaryIO, TypeVar

from ftflayer._config import LayerConfig
from ftflayer._convert import convert_attributes
from ftflayer._emitter import RecordEmitter, current_thread_koid
from ftflayer._filter import SelectiveFilter
from ftflayer._ftf import FtfWriter
from ftflayer._registry import SpanRegistry
from ftflayer._types import RecordKind, TraceRecord

if TYPE_CHECKING:
    from ftflayer._ftf import TraceWriter

logger = logging.getLogger("ftflayer.layer")

F = TypeVar("F", bound=Callable[..., None])


def _guarded(method: F) -> F:
    """Never let a callback raise into the instrumented code."""

    @functools.wraps(method)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            method(*args, **kwargs)
        except Exception:  # noqa: BLE001
            logger.debug("%s failed", method.__name__, exc_info=True)

    return wrapper  # type: ignore[return-value]


class FtfLayer:
    """Turns span and event callbacks into FTF trace records.

    Only spans and events opted in with ``ftf=True`` (or nested inside such a
    span) are recorded. A span's DurationBegin is written on its first enter
    and its DurationEnd on close; a span that is never entered writes
    nothing. Attributes recorded after Begin travel with the End record.

    Usage::

        layer = FtfLayer(open("trace.ftf", "wb"))
        layer.on_new_span(1, "db_query", {"ftf": True, "category": "database"})
        layer.on_enter(1)
        layer.on_event("rows", {"rows": 42}, parent_id=1)
        layer.on_exit(1)
        layer.on_close(1)
        layer.close()
    """

    def __init__(
        self,
        sink: BinaryIO | None = None,
        config: LayerConfig | None = None,
        *,
        writer: TraceWriter | None = None,
    ) -> None:
        if writer is None:
            if sink is None:
                msg = "FtfLayer needs either a sink or a writer"
                raise ValueError(msg)
            writer = FtfWriter(sink)
        self.config = config or LayerConfig()
        self._filter = SelectiveFilter(self.config)
        self._registry = SpanRegistry()
        self._emitter = RecordEmitter(
            writer,
            process_id=self.config.resolved_process_id,
            max_consecutive_failures=self.config.max_consecutive_failures,
        )
        self._emitter.write_header(self.config.provider_id, self.config.provider_name)

    @_guarded
    def on_new_span(
        self,
        span_id: Hashable,
        name: str,
        attributes: Mapping[str, Any],
        parent_id: Hashable | None = None,
    ) -> None:
        decision = self._filter.resolve(attributes, self._registry.get(parent_id))
        if not decision.eligible:
            return
        args = convert_attributes(attributes, self._filter.reserved)
        self._registry.create(span_id, name, decision.category, args)

    @_guarded
    def on_record(self, span_id: Hashable, attributes: Mapping[str, Any]) -> None:
        if span_id not in self._registry:
            return
        self._registry.record(span_id, convert_attributes(attributes, self._filter.reserved))

    @_guarded
    def on_enter(self, span_id: Hashable) -> None:
        if span_id not in self._registry:
            return
        timestamp = self._emitter.now()
        state = self._registry.enter(span_id, timestamp, current_thread_koid())
        if state is None:
            return
        with state.lock:
            if state.closed:
                logger.debug("Span %r closed before its Begin was written", span_id)
                return
            state.begin_written = self._emitter.emit(TraceRecord(
                kind=RecordKind.DURATION_BEGIN,
                timestamp=timestamp,
                name=state.name,
                category=state.category,
                thread_koid=state.thread_koid,
                args=tuple(state.args),
            ))

    @_guarded
    def on_exit(self, span_id: Hashable) -> None:
        if span_id not in self._registry:
            return
        self._registry.exit(span_id)

    @_guarded
    def on_close(self, span_id: Hashable) -> None:
        state = self._registry.close(span_id)
        if state is None:
            logger.debug("Ignoring close for untracked span %r", span_id)
            return
        with state.lock:
            state.closed = True
            if not state.begin_written:
                if state.begun:
                    logger.debug("Skipping End for span %r: its Begin was not written", span_id)
                return
        self._emitter.emit(TraceRecord(
            kind=RecordKind.DURATION_END,
            timestamp=self._emitter.now(),
            name=state.name,
            category=state.category,
            thread_koid=state.thread_koid,
            args=tuple(state.late_args),
        ))

    @_guarded
    def on_event(
        self,
        name: str,
        attributes: Mapping[str, Any],
        parent_id: Hashable | None = None,
    ) -> None:
        # Only a parent that is currently entered passes on eligibility
        parent = self._registry.get(parent_id)
        if parent is not None and parent.depth == 0:
            parent = None
        decision = self._filter.resolve(attributes, parent)
        if not decision.eligible:
            return
        self._emitter.emit(TraceRecord(
            kind=RecordKind.INSTANT,
            timestamp=self._emitter.now(),
            name=name,
            category=decision.category,
            thread_koid=current_thread_koid(),
            args=tuple(convert_attributes(attributes, self._filter.reserved)),
        ))

    def is_tracked(self, span_id: Hashable) -> bool:
        """True while ``span_id`` is an open, recorded span."""
        return span_id in self._registry

    def flush(self) -> None:
        self._emitter.flush()

    def close(self, *, close_sink: bool = True) -> None:
        """Flush pending output; close the sink unless told not to."""
        self._emitter.close(close_writer=close_sink)

    @property
    def emitter(self) -> RecordEmitter:
        return self._emitter

    @property
    def registry(self) -> SpanRegistry:
        return self._registry
