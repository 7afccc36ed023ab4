"""SDK singleton: owns the global layer and its output sink."""

from __future__ import annotations

import atexit
import os
from collections.abc import Mapping
from typing import Any, BinaryIO

from ftflayer._config import LayerConfig
from ftflayer._context import get_current_span
from ftflayer._layer import FtfLayer
from ftflayer._span import Span

_sdk_instance: _FtfSDK | None = None


class _FtfSDK:
    """Internal SDK singleton. Not part of the public API."""

    enabled = True

    def __init__(self, layer: FtfLayer, *, owns_sink: bool) -> None:
        self.layer = layer
        self.config = layer.config
        self._owns_sink = owns_sink

    def shutdown(self) -> None:
        """Flush the trace and close the sink if we opened it."""
        self.layer.close(close_sink=self._owns_sink)

    def create_span(self, name: str, attributes: Mapping[str, Any]) -> Span:
        """Create a new span wired to the global layer."""
        return Span(name, layer=self.layer, attributes=attributes)

    def record_event(self, name: str, attributes: Mapping[str, Any]) -> None:
        parent = get_current_span()
        self.layer.on_event(name, attributes, parent.span_id if parent is not None else None)


class _NoopSDK:
    """Fallback used when SDK is not initialized. Everything is discarded."""

    enabled = False

    def create_span(self, name: str, attributes: Mapping[str, Any]) -> Span:
        return Span(name, layer=None)

    def record_event(self, name: str, attributes: Mapping[str, Any]) -> None:
        pass


_noop = _NoopSDK()


def _get_sdk() -> _FtfSDK | _NoopSDK:
    """Return the active SDK or a noop fallback."""
    if _sdk_instance is not None:
        return _sdk_instance
    return _noop


def init(
    sink: str | os.PathLike[str] | BinaryIO,
    *,
    provider_id: int = 1,
    provider_name: str = "trace",
    process_id: int | None = None,
    default_category: str = "default",
) -> FtfLayer:
    """Initialize tracing to ``sink``, a file path or a writable binary stream.

    A path is opened (and truncated) here and closed by :func:`shutdown`;
    a stream passed in is only flushed, never closed.
    """
    global _sdk_instance  # noqa: PLW0603

    if _sdk_instance is not None:
        _sdk_instance.shutdown()
        _sdk_instance = None

    config = LayerConfig(
        provider_id=provider_id,
        provider_name=provider_name,
        process_id=process_id,
        default_category=default_category,
    )
    if isinstance(sink, (str, os.PathLike)):
        layer = FtfLayer(open(sink, "wb"), config)  # noqa: SIM115
        owns_sink = True
    else:
        layer = FtfLayer(sink, config)
        owns_sink = False

    _sdk_instance = _FtfSDK(layer, owns_sink=owns_sink)
    atexit.register(shutdown)
    return layer


def shutdown() -> None:
    """Shut down the SDK, flushing the trace."""
    global _sdk_instance  # noqa: PLW0603
    if _sdk_instance is not None:
        _sdk_instance.shutdown()
        _sdk_instance = None
