"""OpenTelemetry bridge: feeds SDK spans into an FtfLayer.

Usage::

    from opentelemetry.sdk.trace import TracerProvider
    from ftflayer import FtfLayer
    from ftflayer.integrations.opentelemetry import FtfSpanProcessor

    layer = FtfLayer(open("trace.ftf", "wb"))
    provider = TracerProvider()
    provider.add_span_processor(FtfSpanProcessor(layer))

    tracer = provider.get_tracer(__name__)
    with tracer.start_as_current_span("db_query", attributes={"ftf": True}):
        ...

Span events are written as instant records when the span ends, so they
carry the end timestamp rather than their own.
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping
from typing import TYPE_CHECKING, Any

try:
    from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor
    from opentelemetry.trace import StatusCode
except ImportError:
    msg = (
        "opentelemetry-sdk is required for this integration. "
        "Install it with: pip install ftflayer[otel]"
    )
    raise ImportError(msg) from None

if TYPE_CHECKING:
    from opentelemetry.context import Context
    from opentelemetry.sdk.trace import Span as SdkSpan

    from ftflayer._layer import FtfLayer


def _key(span_id: int) -> Hashable:
    return ("otel", span_id)


class FtfSpanProcessor(SpanProcessor):
    """SpanProcessor that reports span start/end to an :class:`FtfLayer`.

    ``on_start`` creates and enters the span; ``on_end`` writes the span's
    events, records attributes set after start, then exits and closes it.
    The layer is not closed by :meth:`shutdown`; its owner closes it.
    """

    def __init__(self, layer: FtfLayer) -> None:
        self._layer = layer
        self._start_attributes: dict[Hashable, dict[str, Any]] = {}

    def on_start(self, span: SdkSpan, parent_context: Context | None = None) -> None:
        key = _key(span.context.span_id)
        parent = span.parent
        parent_key = _key(parent.span_id) if parent is not None else None
        attributes = dict(span.attributes or {})

        self._layer.on_new_span(key, span.name, attributes, parent_key)
        if self._layer.is_tracked(key):
            self._start_attributes[key] = attributes
        self._layer.on_enter(key)

    def on_end(self, span: ReadableSpan) -> None:
        key = _key(span.context.span_id)
        started = self._start_attributes.pop(key, None)
        if started is None:
            self._layer.on_close(key)
            return

        for event in span.events:
            self._layer.on_event(event.name, dict(event.attributes or {}), key)

        late = _late_attributes(started, span.attributes or {})
        if span.status.status_code is StatusCode.ERROR:
            late["error"] = span.status.description or "error"
        if late:
            self._layer.on_record(key, late)

        self._layer.on_exit(key)
        self._layer.on_close(key)

    def shutdown(self) -> None:
        self._start_attributes.clear()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        self._layer.flush()
        return True


def _late_attributes(started: Mapping[str, Any], final: Mapping[str, Any]) -> dict[str, Any]:
    """Attributes added or changed since the span started."""
    return {
        name: value
        for name, value in final.items()
        if name not in started or started[name] != value
    }
