"""Attribute conversion into the closed set of argument types."""

from __future__ import annotations

import ctypes
import logging
import numbers
from collections.abc import Collection, Mapping
from typing import Any

from ftflayer._types import ArgType, ArgumentValue

logger = logging.getLogger("ftflayer.convert")

UNPRINTABLE = "<unprintable>"

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MAX = (1 << 64) - 1

_UNSIGNED_CTYPES = (
    ctypes.c_ubyte,
    ctypes.c_ushort,
    ctypes.c_uint,
    ctypes.c_ulong,
    ctypes.c_ulonglong,
)
_SIGNED_CTYPES = (
    ctypes.c_byte,
    ctypes.c_short,
    ctypes.c_int,
    ctypes.c_long,
    ctypes.c_longlong,
)
_FLOAT_CTYPES = (ctypes.c_float, ctypes.c_double, ctypes.c_longdouble)


def _is_unsigned(value: Any) -> bool:
    """True for fixed-width unsigned scalars such as ``numpy.uint32``."""
    dtype = getattr(value, "dtype", None)
    return getattr(dtype, "kind", None) == "u"


def _describe(value: Any) -> str:
    try:
        text = repr(value)
    except Exception:  # noqa: BLE001
        logger.debug("repr() failed for %s", type(value).__name__, exc_info=True)
        return UNPRINTABLE
    return text or UNPRINTABLE


def _from_integer(name: str, number: int, unsigned: bool) -> ArgumentValue:
    if not unsigned and _INT64_MIN <= number <= _INT64_MAX:
        return ArgumentValue(name, ArgType.INT64, number)
    if 0 <= number <= _UINT64_MAX:
        return ArgumentValue(name, ArgType.UINT64, number)
    return ArgumentValue(name, ArgType.STRING, str(number))


def _from_ctypes(name: str, value: Any) -> ArgumentValue:
    if isinstance(value, ctypes.c_bool):
        return ArgumentValue(name, ArgType.BOOLEAN, bool(value.value))
    if isinstance(value, _UNSIGNED_CTYPES):
        return ArgumentValue(name, ArgType.UINT64, int(value.value))
    if isinstance(value, _SIGNED_CTYPES):
        return ArgumentValue(name, ArgType.INT64, int(value.value))
    return ArgumentValue(name, ArgType.FLOAT, float(value.value))


def _convert(name: str, value: Any) -> ArgumentValue:
    if isinstance(value, bool):
        return ArgumentValue(name, ArgType.BOOLEAN, value)
    if isinstance(value, str):
        return ArgumentValue(name, ArgType.STRING, value)
    if isinstance(value, numbers.Integral):
        return _from_integer(name, int(value), _is_unsigned(value))
    if isinstance(value, numbers.Real):
        return ArgumentValue(name, ArgType.FLOAT, float(value))
    if isinstance(value, (ctypes.c_bool, *_UNSIGNED_CTYPES, *_SIGNED_CTYPES, *_FLOAT_CTYPES)):
        return _from_ctypes(name, value)
    if isinstance(value, BaseException):
        text = str(value) or type(value).__name__
        return ArgumentValue(name, ArgType.STRING, text)
    return ArgumentValue(name, ArgType.STRING, _describe(value))


def to_argument(name: str, value: Any) -> ArgumentValue:
    """Convert one attribute to an ArgumentValue. Never raises.

    Values outside the supported types are stored as their ``repr()``;
    a value that cannot even be described becomes ``"<unprintable>"``.
    """
    try:
        return _convert(name, value)
    except Exception:  # noqa: BLE001
        logger.debug("Falling back to text for attribute %r", name, exc_info=True)
        return ArgumentValue(name, ArgType.STRING, _describe(value))


def convert_attributes(
    attributes: Mapping[str, Any],
    reserved: Collection[str] = (),
) -> list[ArgumentValue]:
    """Convert an attribute mapping, in order, skipping reserved names."""
    return [
        to_argument(name, value)
        for name, value in attributes.items()
        if name not in reserved
    ]
