"""Fuchsia Trace Format (FTF) record encoder.

Every record is a sequence of little-endian 64-bit words. The first word is
a header holding the record type (bits 0-3) and the record size in words
(bits 4-15); the remaining header bits are type-specific. Strings are UTF-8,
zero-padded to a word boundary.

Each record is encoded in full before a single ``write()`` call on the sink,
so a failed encode never leaves a partial record behind.
"""

from __future__ import annotations

import enum
import struct
from collections.abc import Sequence
from typing import BinaryIO, NamedTuple, Protocol

from ftflayer._types import ArgType, StringRef, ThreadRef

MAGIC_NUMBER_RECORD = 0x0016547846040010
MAGIC = 0x16547846
TICKS_PER_SECOND = 1_000_000_000

MAX_RECORD_WORDS = 0xFFF
MAX_ARGUMENTS = 15
MAX_STRING_INDEX = 0x7FFF
MAX_THREAD_INDEX = 0xFF
MAX_PROVIDER_NAME_BYTES = 0xFF
# Leaves room for the header word inside a maximum-size string record.
MAX_STRING_BYTES = 32_000

INLINE_STRING_FLAG = 0x8000

_WORD = struct.Struct("<Q")
_INT64 = struct.Struct("<q")
_DOUBLE = struct.Struct("<d")
_KOID_PAIR = struct.Struct("<QQ")


class FtfError(Exception):
    """Raised when a record cannot be encoded or decoded."""


class RecordType(enum.IntEnum):
    METADATA = 0
    INITIALIZATION = 1
    STRING = 2
    THREAD = 3
    EVENT = 4
    LARGE = 15


class MetadataType(enum.IntEnum):
    PROVIDER_INFO = 1
    PROVIDER_SECTION = 2
    PROVIDER_EVENT = 3
    TRACE_INFO = 4


class EventType(enum.IntEnum):
    INSTANT = 0
    COUNTER = 1
    DURATION_BEGIN = 2
    DURATION_END = 3


class ArgumentType(enum.IntEnum):
    NULL = 0
    INT32 = 1
    UINT32 = 2
    INT64 = 3
    UINT64 = 4
    DOUBLE = 5
    STRING = 6
    POINTER = 7
    KOID = 8
    BOOL = 9


class WireArgument(NamedTuple):
    """An argument whose strings have already been interned."""

    name: StringRef
    kind: ArgType
    value: StringRef | int | float | bool


class TraceWriter(Protocol):
    """What the emitter needs from a trace writer. All calls may raise."""

    @property
    def closed(self) -> bool: ...

    def write_magic(self) -> None: ...

    def write_initialization(self, ticks_per_second: int) -> None: ...

    def write_provider_info(self, provider_id: int, name: str) -> None: ...

    def write_string(self, index: int, value: str) -> None: ...

    def write_thread(self, index: int, process_koid: int, thread_koid: int) -> None: ...

    def begin_duration(
        self,
        timestamp: int,
        name_ref: StringRef,
        category_ref: StringRef,
        thread_ref: ThreadRef,
        args: Sequence[WireArgument] = (),
    ) -> None: ...

    def end_duration(
        self,
        timestamp: int,
        name_ref: StringRef,
        category_ref: StringRef,
        thread_ref: ThreadRef,
        args: Sequence[WireArgument] = (),
    ) -> None: ...

    def instant(
        self,
        timestamp: int,
        name_ref: StringRef,
        category_ref: StringRef,
        thread_ref: ThreadRef,
        args: Sequence[WireArgument] = (),
    ) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


def _pad(data: bytes) -> bytes:
    return data + b"\0" * (-len(data) % 8)


def encode_text(value: str, limit: int = MAX_STRING_BYTES) -> bytes:
    """UTF-8 encode ``value``, cut to ``limit`` bytes on a character boundary."""
    data = value.encode("utf-8", errors="replace")
    if len(data) > limit:
        data = data[:limit].decode("utf-8", errors="ignore").encode("utf-8")
    return data


def _string_ref(ref: StringRef) -> tuple[int, bytes]:
    """Return the 16-bit string-ref field and any inline payload."""
    if isinstance(ref, int):
        if not 0 <= ref <= MAX_STRING_INDEX:
            msg = f"string index out of range: {ref}"
            raise FtfError(msg)
        return ref, b""
    data = encode_text(ref)
    if not data:
        return 0, b""
    return INLINE_STRING_FLAG | len(data), _pad(data)


def _header(record_type: int, size_words: int, fields: int = 0) -> int:
    if size_words > MAX_RECORD_WORDS:
        msg = f"record too large: {size_words} words"
        raise FtfError(msg)
    return record_type | (size_words << 4) | fields


def _encode_argument(arg: WireArgument) -> bytes:
    name_field, name_inline = _string_ref(arg.name)
    extra = 0
    body = b""
    try:
        if arg.kind is ArgType.BOOLEAN:
            arg_type = ArgumentType.BOOL
            extra = int(bool(arg.value)) << 32
        elif arg.kind is ArgType.INT64:
            arg_type = ArgumentType.INT64
            body = _INT64.pack(arg.value)
        elif arg.kind is ArgType.UINT64:
            arg_type = ArgumentType.UINT64
            body = _WORD.pack(arg.value)
        elif arg.kind is ArgType.FLOAT:
            arg_type = ArgumentType.DOUBLE
            body = _DOUBLE.pack(arg.value)
        elif arg.kind is ArgType.STRING:
            arg_type = ArgumentType.STRING
            value_field, body = _string_ref(arg.value)  # type: ignore[arg-type]
            extra = value_field << 32
        else:
            msg = f"unsupported argument type: {arg.kind!r}"
            raise FtfError(msg)
    except struct.error as exc:
        msg = f"argument {arg.name!r} out of range for {arg.kind.value}"
        raise FtfError(msg) from exc

    size = 1 + (len(name_inline) + len(body)) // 8
    header = _header(arg_type, size, name_field << 16 | extra)
    return _WORD.pack(header) + name_inline + body


def encode_event(
    event_type: EventType,
    timestamp: int,
    name_ref: StringRef,
    category_ref: StringRef,
    thread_ref: ThreadRef,
    args: Sequence[WireArgument] = (),
) -> bytes:
    """Encode one event record."""
    if len(args) > MAX_ARGUMENTS:
        msg = f"too many arguments: {len(args)} > {MAX_ARGUMENTS}"
        raise FtfError(msg)
    if not 0 <= timestamp <= 0xFFFF_FFFF_FFFF_FFFF:
        msg = f"timestamp out of range: {timestamp}"
        raise FtfError(msg)

    if isinstance(thread_ref, int):
        if not 1 <= thread_ref <= MAX_THREAD_INDEX:
            msg = f"thread index out of range: {thread_ref}"
            raise FtfError(msg)
        thread_field, thread_inline = thread_ref, b""
    else:
        thread_field, thread_inline = 0, _KOID_PAIR.pack(*thread_ref)

    category_field, category_inline = _string_ref(category_ref)
    name_field, name_inline = _string_ref(name_ref)

    body = b"".join([
        _WORD.pack(timestamp),
        thread_inline,
        category_inline,
        name_inline,
        *(_encode_argument(arg) for arg in args),
    ])
    fields = (
        event_type << 16
        | len(args) << 20
        | thread_field << 24
        | category_field << 32
        | name_field << 48
    )
    header = _header(RecordType.EVENT, 1 + len(body) // 8, fields)
    return _WORD.pack(header) + body


def encode_string_record(index: int, value: str) -> bytes:
    if not 1 <= index <= MAX_STRING_INDEX:
        msg = f"string index out of range: {index}"
        raise FtfError(msg)
    data = encode_text(value)
    payload = _pad(data)
    header = _header(RecordType.STRING, 1 + len(payload) // 8, index << 16 | len(data) << 32)
    return _WORD.pack(header) + payload


def encode_thread_record(index: int, process_koid: int, thread_koid: int) -> bytes:
    if not 1 <= index <= MAX_THREAD_INDEX:
        msg = f"thread index out of range: {index}"
        raise FtfError(msg)
    header = _header(RecordType.THREAD, 3, index << 16)
    return _WORD.pack(header) + _KOID_PAIR.pack(process_koid, thread_koid)


def encode_provider_info(provider_id: int, name: str) -> bytes:
    data = encode_text(name, MAX_PROVIDER_NAME_BYTES)
    payload = _pad(data)
    fields = MetadataType.PROVIDER_INFO << 16 | provider_id << 20 | len(data) << 52
    header = _header(RecordType.METADATA, 1 + len(payload) // 8, fields)
    return _WORD.pack(header) + payload


def encode_initialization(ticks_per_second: int) -> bytes:
    return _WORD.pack(_header(RecordType.INITIALIZATION, 2)) + _WORD.pack(ticks_per_second)


class FtfWriter:
    """Writes FTF records to a binary sink.

    The sink only needs ``write(bytes)``; ``flush()``, ``close()`` and
    ``closed`` are used when present. Encoding problems raise
    :class:`FtfError`; sink errors propagate unchanged.
    """

    def __init__(self, sink: BinaryIO) -> None:
        self._sink = sink

    @property
    def closed(self) -> bool:
        return bool(getattr(self._sink, "closed", False))

    def _write(self, data: bytes) -> None:
        self._sink.write(data)

    def write_magic(self) -> None:
        self._write(_WORD.pack(MAGIC_NUMBER_RECORD))

    def write_initialization(self, ticks_per_second: int = TICKS_PER_SECOND) -> None:
        self._write(encode_initialization(ticks_per_second))

    def write_provider_info(self, provider_id: int, name: str) -> None:
        self._write(encode_provider_info(provider_id, name))

    def write_string(self, index: int, value: str) -> None:
        self._write(encode_string_record(index, value))

    def write_thread(self, index: int, process_koid: int, thread_koid: int) -> None:
        self._write(encode_thread_record(index, process_koid, thread_koid))

    def begin_duration(
        self,
        timestamp: int,
        name_ref: StringRef,
        category_ref: StringRef,
        thread_ref: ThreadRef,
        args: Sequence[WireArgument] = (),
    ) -> None:
        self._write(encode_event(
            EventType.DURATION_BEGIN, timestamp, name_ref, category_ref, thread_ref, args
        ))

    def end_duration(
        self,
        timestamp: int,
        name_ref: StringRef,
        category_ref: StringRef,
        thread_ref: ThreadRef,
        args: Sequence[WireArgument] = (),
    ) -> None:
        self._write(encode_event(
            EventType.DURATION_END, timestamp, name_ref, category_ref, thread_ref, args
        ))

    def instant(
        self,
        timestamp: int,
        name_ref: StringRef,
        category_ref: StringRef,
        thread_ref: ThreadRef,
        args: Sequence[WireArgument] = (),
    ) -> None:
        self._write(encode_event(
            EventType.INSTANT, timestamp, name_ref, category_ref, thread_ref, args
        ))

    def flush(self) -> None:
        flush = getattr(self._sink, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        close = getattr(self._sink, "close", None)
        if close is not None:
            close()
