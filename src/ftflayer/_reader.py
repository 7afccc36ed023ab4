"""FTF decoder for the subset of records this package writes.

Used to inspect trace files and to verify writer output. Only the record
types produced by :class:`~ftflayer._ftf.FtfWriter` are decoded; other
well-formed records are skipped by size.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO

from ftflayer._ftf import (
    INLINE_STRING_FLAG,
    MAGIC,
    MAGIC_NUMBER_RECORD,
    ArgumentType,
    EventType,
    FtfError,
    MetadataType,
    RecordType,
)
from ftflayer._types import ArgType, ArgumentValue, RecordKind

_WORD = struct.Struct("<Q")
_INT64 = struct.Struct("<q")
_DOUBLE = struct.Struct("<d")

_EVENT_KINDS: dict[int, RecordKind] = {
    EventType.INSTANT: RecordKind.INSTANT,
    EventType.DURATION_BEGIN: RecordKind.DURATION_BEGIN,
    EventType.DURATION_END: RecordKind.DURATION_END,
}


@dataclass(frozen=True)
class DecodedEvent:
    """One decoded event record, with references resolved.

    ``name_ref``, ``category_ref`` and ``thread_ref`` hold the raw table
    indices (0 when the value was written inline).
    """

    kind: RecordKind
    timestamp: int
    name: str
    category: str
    thread: tuple[int, int]
    args: tuple[ArgumentValue, ...]
    name_ref: int
    category_ref: int
    thread_ref: int

    @property
    def arguments(self) -> dict[str, str | int | float | bool]:
        return {arg.name: arg.value for arg in self.args}


@dataclass
class DecodedTrace:
    """Everything decoded from one trace stream."""

    provider_id: int | None = None
    provider_name: str | None = None
    ticks_per_second: int | None = None
    strings: dict[int, str] = field(default_factory=dict)
    threads: dict[int, tuple[int, int]] = field(default_factory=dict)
    events: list[DecodedEvent] = field(default_factory=list)


class _Cursor:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.offset = 0

    def word(self) -> int:
        if self.offset + 8 > len(self.data):
            msg = f"truncated record at offset {self.offset}"
            raise FtfError(msg)
        (value,) = _WORD.unpack_from(self.data, self.offset)
        self.offset += 8
        return value

    def signed(self) -> int:
        return _INT64.unpack(_WORD.pack(self.word()))[0]

    def double(self) -> float:
        return _DOUBLE.unpack(_WORD.pack(self.word()))[0]

    def text(self, length: int) -> str:
        padded = length + (-length % 8)
        if self.offset + padded > len(self.data):
            msg = f"truncated string at offset {self.offset}"
            raise FtfError(msg)
        raw = self.data[self.offset:self.offset + length]
        self.offset += padded
        return raw.decode("utf-8", errors="replace")


def _resolve_string(cursor: _Cursor, trace: DecodedTrace, ref: int) -> str:
    if ref == 0:
        return ""
    if ref & INLINE_STRING_FLAG:
        return cursor.text(ref & ~INLINE_STRING_FLAG)
    try:
        return trace.strings[ref]
    except KeyError:
        msg = f"reference to undefined string index {ref}"
        raise FtfError(msg) from None


def _read_argument(cursor: _Cursor, trace: DecodedTrace) -> ArgumentValue | None:
    start = cursor.offset
    header = cursor.word()
    arg_type = header & 0xF
    size = (header >> 4) & 0xFFF
    if size == 0:
        msg = f"zero-size argument at offset {start}"
        raise FtfError(msg)
    name = _resolve_string(cursor, trace, (header >> 16) & 0xFFFF)

    result: ArgumentValue | None
    if arg_type == ArgumentType.BOOL:
        result = ArgumentValue(name, ArgType.BOOLEAN, bool((header >> 32) & 1))
    elif arg_type == ArgumentType.INT32:
        value = (header >> 32) & 0xFFFF_FFFF
        result = ArgumentValue(name, ArgType.INT64, value - (1 << 32) if value >> 31 else value)
    elif arg_type == ArgumentType.UINT32:
        result = ArgumentValue(name, ArgType.UINT64, (header >> 32) & 0xFFFF_FFFF)
    elif arg_type == ArgumentType.INT64:
        result = ArgumentValue(name, ArgType.INT64, cursor.signed())
    elif arg_type == ArgumentType.UINT64:
        result = ArgumentValue(name, ArgType.UINT64, cursor.word())
    elif arg_type == ArgumentType.DOUBLE:
        result = ArgumentValue(name, ArgType.FLOAT, cursor.double())
    elif arg_type == ArgumentType.STRING:
        value_text = _resolve_string(cursor, trace, (header >> 32) & 0xFFFF)
        result = ArgumentValue(name, ArgType.STRING, value_text)
    else:
        result = None

    cursor.offset = start + size * 8
    return result


def _read_event(cursor: _Cursor, trace: DecodedTrace, header: int) -> None:
    event_type = (header >> 16) & 0xF
    arg_count = (header >> 20) & 0xF
    thread_ref = (header >> 24) & 0xFF
    category_ref = (header >> 32) & 0xFFFF
    name_ref = (header >> 48) & 0xFFFF

    timestamp = cursor.word()
    if thread_ref == 0:
        thread = (cursor.word(), cursor.word())
    elif thread_ref in trace.threads:
        thread = trace.threads[thread_ref]
    else:
        msg = f"reference to undefined thread index {thread_ref}"
        raise FtfError(msg)
    category = _resolve_string(cursor, trace, category_ref)
    name = _resolve_string(cursor, trace, name_ref)

    args: list[ArgumentValue] = []
    for _ in range(arg_count):
        arg = _read_argument(cursor, trace)
        if arg is not None:
            args.append(arg)

    kind = _EVENT_KINDS.get(event_type)
    if kind is None:
        return
    trace.events.append(DecodedEvent(
        kind=kind,
        timestamp=timestamp,
        name=name,
        category=category,
        thread=thread,
        args=tuple(args),
        name_ref=0 if name_ref & INLINE_STRING_FLAG else name_ref,
        category_ref=0 if category_ref & INLINE_STRING_FLAG else category_ref,
        thread_ref=thread_ref,
    ))


def _read_metadata(cursor: _Cursor, trace: DecodedTrace, header: int) -> None:
    metadata_type = (header >> 16) & 0xF
    if metadata_type == MetadataType.PROVIDER_INFO:
        trace.provider_id = (header >> 20) & 0xFFFF_FFFF
        trace.provider_name = cursor.text((header >> 52) & 0xFF)
    elif metadata_type == MetadataType.TRACE_INFO and (header >> 20) & 0xF == 0:
        if (header >> 24) & 0xFFFF_FFFF != MAGIC:
            msg = "bad magic number"
            raise FtfError(msg)


def read_trace(source: bytes | BinaryIO) -> DecodedTrace:
    """Decode an FTF stream into a :class:`DecodedTrace`.

    Raises :class:`FtfError` on a missing magic number, a truncated or
    malformed record, or a reference to an undefined string or thread.
    """
    data = source if isinstance(source, (bytes, bytearray)) else source.read()
    cursor = _Cursor(bytes(data))
    trace = DecodedTrace()

    if len(data) < 8 or _WORD.unpack_from(data, 0)[0] != MAGIC_NUMBER_RECORD:
        msg = "stream does not start with the FTF magic number"
        raise FtfError(msg)

    while cursor.offset < len(data):
        start = cursor.offset
        header = cursor.word()
        record_type = header & 0xF
        size = (header >> 4) & 0xFFF
        if record_type == RecordType.LARGE or size == 0:
            msg = f"unsupported or empty record at offset {start}"
            raise FtfError(msg)
        end = start + size * 8
        if end > len(data):
            msg = f"truncated record at offset {start}"
            raise FtfError(msg)

        if record_type == RecordType.METADATA:
            _read_metadata(cursor, trace, header)
        elif record_type == RecordType.INITIALIZATION:
            trace.ticks_per_second = cursor.word()
        elif record_type == RecordType.STRING:
            index = (header >> 16) & 0x7FFF
            trace.strings[index] = cursor.text((header >> 32) & 0x7FFF)
        elif record_type == RecordType.THREAD:
            index = (header >> 16) & 0xFF
            trace.threads[index] = (cursor.word(), cursor.word())
        elif record_type == RecordType.EVENT:
            _read_event(cursor, trace, header)
        else:
            cursor.offset = end

        if cursor.offset != end:
            msg = f"record at offset {start} does not match its declared size"
            raise FtfError(msg)

    return trace
