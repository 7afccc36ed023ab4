"""ftflayer: record tracing spans and events as Fuchsia Trace Format."""

from __future__ import annotations

from typing import Any

from ftflayer._config import LayerConfig
from ftflayer._convert import to_argument
from ftflayer._ftf import FtfError, FtfWriter, TraceWriter
from ftflayer._layer import FtfLayer
from ftflayer._reader import DecodedEvent, DecodedTrace, read_trace
from ftflayer._sdk import _get_sdk, init, shutdown
from ftflayer._span import Span
from ftflayer._trace import trace
from ftflayer._types import ArgType, ArgumentValue, RecordKind, TraceRecord

__version__ = "0.1.0"

__all__ = [
    "ArgType",
    "ArgumentValue",
    "DecodedEvent",
    "DecodedTrace",
    "FtfError",
    "FtfLayer",
    "FtfWriter",
    "LayerConfig",
    "RecordKind",
    "Span",
    "TraceRecord",
    "TraceWriter",
    "__version__",
    "event",
    "init",
    "read_trace",
    "shutdown",
    "span",
    "to_argument",
    "trace",
]


def span(name: str, /, **attributes: Any) -> Span:
    """Create a span context manager.

    Usage::

        with ftflayer.span("db_query", ftf=True, category="database") as s:
            s.set_attribute("table", "users")
    """
    return _get_sdk().create_span(name, attributes)


def event(name: str, /, **attributes: Any) -> None:
    """Record an instant event inside the current span, if any.

    Usage::

        ftflayer.event("rows", rows=42)
    """
    _get_sdk().record_event(name, attributes)
