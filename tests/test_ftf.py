"""Tests for the FTF encoder and reader."""

from __future__ import annotations

import io
import struct

import pytest

from ftflayer._ftf import (
    MAGIC_NUMBER_RECORD,
    MAX_STRING_BYTES,
    EventType,
    FtfError,
    FtfWriter,
    WireArgument,
    encode_event,
    encode_initialization,
    encode_provider_info,
    encode_string_record,
    encode_text,
    encode_thread_record,
)
from ftflayer._reader import read_trace
from ftflayer._types import ArgType, ArgumentValue, RecordKind


def _words(*values: int) -> bytes:
    return b"".join(struct.pack("<Q", v) for v in values)


def _header_only_writer() -> tuple[FtfWriter, io.BytesIO]:
    sink = io.BytesIO()
    writer = FtfWriter(sink)
    writer.write_magic()
    writer.write_initialization()
    writer.write_provider_info(1, "trace")
    return writer, sink


class TestEncoding:
    def test_magic(self) -> None:
        sink = io.BytesIO()
        FtfWriter(sink).write_magic()
        assert sink.getvalue() == _words(MAGIC_NUMBER_RECORD)

    def test_initialization(self) -> None:
        assert encode_initialization(1_000_000_000) == _words(1 | 2 << 4, 1_000_000_000)

    def test_provider_info(self) -> None:
        header = 0 | 2 << 4 | 1 << 16 | 7 << 20 | 5 << 52
        assert encode_provider_info(7, "trace") == _words(header) + b"trace\0\0\0"

    def test_string_record(self) -> None:
        header = 2 | 2 << 4 | 1 << 16 | 3 << 32
        assert encode_string_record(1, "abc") == _words(header) + b"abc\0\0\0\0\0"

    def test_thread_record(self) -> None:
        header = 3 | 3 << 4 | 5 << 16
        assert encode_thread_record(5, 10, 20) == _words(header, 10, 20)

    def test_instant_event_with_indexed_refs(self) -> None:
        data = encode_event(EventType.INSTANT, 1000, 3, 2, 1)
        header = 4 | 2 << 4 | 0 << 16 | 0 << 20 | 1 << 24 | 2 << 32 | 3 << 48
        assert data == _words(header, 1000)

    def test_inline_name_and_thread(self) -> None:
        data = encode_event(EventType.DURATION_BEGIN, 5, "hi", 2, (100, 7))
        header = 4 | 5 << 4 | 2 << 16 | 0 << 24 | 2 << 32 | 0x8002 << 48
        assert data == _words(header, 5, 100, 7) + b"hi\0\0\0\0\0\0"

    def test_boolean_and_int64_arguments(self) -> None:
        args = [
            WireArgument(4, ArgType.BOOLEAN, True),
            WireArgument(5, ArgType.INT64, -1),
        ]
        data = encode_event(EventType.INSTANT, 0, 3, 2, 1, args)
        header = 4 | 5 << 4 | 2 << 20 | 1 << 24 | 2 << 32 | 3 << 48
        bool_arg = 9 | 1 << 4 | 4 << 16 | 1 << 32
        int_arg = 3 | 2 << 4 | 5 << 16
        assert data == _words(header, 0, bool_arg, int_arg) + struct.pack("<q", -1)

    def test_too_many_arguments(self) -> None:
        args = [WireArgument(1, ArgType.BOOLEAN, True)] * 16
        with pytest.raises(FtfError):
            encode_event(EventType.INSTANT, 0, 1, 1, 1, args)

    def test_invalid_refs(self) -> None:
        with pytest.raises(FtfError):
            encode_event(EventType.INSTANT, 0, 1, 1, 0)
        with pytest.raises(FtfError):
            encode_event(EventType.INSTANT, 0, 0x8000, 1, 1)
        with pytest.raises(FtfError):
            encode_string_record(0, "x")
        with pytest.raises(FtfError):
            encode_thread_record(256, 1, 1)

    def test_out_of_range_argument(self) -> None:
        with pytest.raises(FtfError):
            encode_event(EventType.INSTANT, 0, 1, 1, 1, [WireArgument(1, ArgType.UINT64, -1)])

    def test_oversized_record(self) -> None:
        big = "x" * MAX_STRING_BYTES
        args = [WireArgument(1, ArgType.STRING, big), WireArgument(2, ArgType.STRING, big)]
        with pytest.raises(FtfError):
            encode_event(EventType.INSTANT, 0, 1, 1, 1, args)

    def test_long_text_cut_on_character_boundary(self) -> None:
        data = encode_text("é" * 20_000)
        assert len(data) == MAX_STRING_BYTES
        assert data.decode("utf-8") == "é" * (MAX_STRING_BYTES // 2)


class TestReader:
    def test_header_fields(self) -> None:
        _, sink = _header_only_writer()
        trace = read_trace(sink.getvalue())
        assert trace.provider_id == 1
        assert trace.provider_name == "trace"
        assert trace.ticks_per_second == 1_000_000_000
        assert trace.events == []

    def test_decodes_events_and_arguments(self) -> None:
        writer, sink = _header_only_writer()
        writer.write_string(1, "db_query")
        writer.write_string(2, "database")
        writer.write_thread(1, 100, 7)
        writer.begin_duration(10, 1, 2, 1, [
            WireArgument("table", ArgType.STRING, "users"),
            WireArgument(1, ArgType.UINT64, 2**64 - 1),
            WireArgument("ratio", ArgType.FLOAT, 0.5),
        ])
        writer.end_duration(20, 1, 2, 1)

        trace = read_trace(io.BytesIO(sink.getvalue()))
        begin, end = trace.events
        assert begin.kind is RecordKind.DURATION_BEGIN
        assert begin.name == "db_query"
        assert begin.category == "database"
        assert begin.thread == (100, 7)
        assert (begin.name_ref, begin.category_ref, begin.thread_ref) == (1, 2, 1)
        assert begin.args == (
            ArgumentValue("table", ArgType.STRING, "users"),
            ArgumentValue("db_query", ArgType.UINT64, 2**64 - 1),
            ArgumentValue("ratio", ArgType.FLOAT, 0.5),
        )
        assert end.kind is RecordKind.DURATION_END
        assert end.timestamp == 20
        assert end.arguments == {}

    def test_missing_magic(self) -> None:
        with pytest.raises(FtfError):
            read_trace(encode_initialization(1))

    def test_truncated_stream(self) -> None:
        writer, sink = _header_only_writer()
        writer.write_string(1, "abcdefghijk")
        with pytest.raises(FtfError):
            read_trace(sink.getvalue()[:-8])

    def test_undefined_string_reference(self) -> None:
        writer, sink = _header_only_writer()
        writer.instant(0, 9, "cat", (1, 1))
        with pytest.raises(FtfError):
            read_trace(sink.getvalue())

    def test_undefined_thread_reference(self) -> None:
        writer, sink = _header_only_writer()
        writer.instant(0, "n", "cat", 3)
        with pytest.raises(FtfError):
            read_trace(sink.getvalue())
