"""@trace decorator for wrapping functions in spans."""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Mapping
from typing import Any, TypeVar, overload

F = TypeVar("F", bound=Callable[..., Any])

_SKIPPED_ARGS = frozenset(("self", "cls"))


@overload
def trace(func: F) -> F: ...


@overload
def trace(
    *,
    name: str | None = None,
    fields: Mapping[str, Any] | None = None,
    record_args: bool = True,
) -> Callable[[F], F]: ...


def trace(
    func: F | None = None,
    *,
    name: str | None = None,
    fields: Mapping[str, Any] | None = None,
    record_args: bool = True,
) -> F | Callable[[F], F]:
    """Decorator that wraps a function call in a span.

    ``fields`` are attached to every span; with ``record_args`` the call's
    arguments are attached too (``self``/``cls`` excluded). Opt the span in
    to recording through ``fields``::

        @trace
        def helper(): ...

        @trace(fields={"ftf": True, "category": "database"})
        def load(user_id: int): ...
    """

    def decorator(fn: F) -> F:
        span_name = name or fn.__qualname__
        static_fields = dict(fields or {})
        signature = inspect.signature(fn) if record_args else None

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            from ftflayer._sdk import _get_sdk

            sdk = _get_sdk()
            if not sdk.enabled:
                return fn(*args, **kwargs)

            attributes = dict(static_fields)
            if signature is not None:
                try:
                    bound = signature.bind_partial(*args, **kwargs)
                except TypeError:
                    pass  # fn will raise the real error
                else:
                    for arg_name, value in bound.arguments.items():
                        if arg_name not in _SKIPPED_ARGS:
                            attributes.setdefault(arg_name, value)

            with sdk.create_span(span_name, attributes):
                return fn(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    if func is not None:
        return decorator(func)
    return decorator
