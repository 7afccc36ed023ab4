"""Span handle that drives an FtfLayer through its lifecycle."""

from __future__ import annotations

import itertools
from collections.abc import Mapping
from contextvars import Token
from types import TracebackType
from typing import TYPE_CHECKING, Any

from ftflayer._context import get_current_span, reset_current_span, set_current_span

if TYPE_CHECKING:
    from ftflayer._layer import FtfLayer

_span_ids = itertools.count(1)


class Span:
    """A named interval reported to an FtfLayer.

    Used as a context manager, which enters, exits and closes the span::

        with Span("load", layer=layer, attributes={"ftf": True}) as s:
            s.set_attribute("rows", 10)

    For work that is suspended and resumed, call :meth:`enter` and
    :meth:`exit` around each slice and :meth:`close` once at the end. Only
    the first enter produces a Begin record.
    """

    def __init__(
        self,
        name: str,
        *,
        layer: FtfLayer | None,
        attributes: Mapping[str, Any] | None = None,
    ) -> None:
        self.name = name
        self._layer = layer
        self.span_id: int = next(_span_ids)
        self._closed = False
        self._tokens: list[Token[Span | None]] = []

        # Contextual parent: whichever span is entered where this one is created
        parent = get_current_span()
        self.parent_id: int | None = parent.span_id if parent is not None else None

        if layer is not None:
            layer.on_new_span(self.span_id, name, dict(attributes or {}), self.parent_id)

    def __enter__(self) -> Span:
        return self.enter()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.set_attribute("error", exc_val if exc_val is not None else exc_type.__name__)
        self.exit()
        self.close()

    def enter(self) -> Span:
        """Make this the current span and report the enter."""
        self._tokens.append(set_current_span(self))
        if self._layer is not None:
            self._layer.on_enter(self.span_id)
        return self

    def exit(self) -> None:
        """Restore the previous current span and report the exit."""
        if self._tokens:
            reset_current_span(self._tokens.pop())
        if self._layer is not None:
            self._layer.on_exit(self.span_id)

    def close(self) -> None:
        """Report the close. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._layer is not None:
            self._layer.on_close(self.span_id)

    def set_attribute(self, key: str, value: Any) -> None:
        """Attach a key-value attribute to this span."""
        if self._layer is not None:
            self._layer.on_record(self.span_id, {key: value})

    def record(self, **attributes: Any) -> None:
        """Attach several attributes at once."""
        if self._layer is not None and attributes:
            self._layer.on_record(self.span_id, attributes)

    @property
    def is_recording(self) -> bool:
        """True if the layer is keeping records for this span."""
        return self._layer is not None and self._layer.is_tracked(self.span_id)
