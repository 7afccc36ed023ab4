"""Record emitter: interns record fields and hands records to the writer.

Designed to sit on the instrumented thread's hot path. Failures are logged
and counted but never raised: tracing must not change the behaviour of the
program being traced.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import TYPE_CHECKING

from ftflayer._ftf import MAX_ARGUMENTS, MAX_STRING_BYTES, TICKS_PER_SECOND, WireArgument
from ftflayer._intern import StringTable, ThreadTable
from ftflayer._types import ArgType, RecordKind

if TYPE_CHECKING:
    from ftflayer._ftf import TraceWriter
    from ftflayer._types import ArgumentValue, TraceRecord

logger = logging.getLogger("ftflayer.emitter")

# A str this short cannot exceed MAX_STRING_BYTES once UTF-8 encoded
_SAFE_STRING_CHARS = MAX_STRING_BYTES // 4

_thread_koids = itertools.count(1)
_local = threading.local()


def current_thread_koid() -> int:
    """Return a trace-local id for the calling thread.

    Ids come from a process-wide counter on first use in each thread, so a
    new thread never inherits the id of one that has exited, even when the
    OS reuses its native identifier.
    """
    try:
        return _local.koid  # type: ignore[no-any-return]
    except AttributeError:
        _local.koid = next(_thread_koids)
        return _local.koid  # type: ignore[no-any-return]


class RecordEmitter:
    """Writes TraceRecords through a TraceWriter, best-effort.

    One lock covers interning and the write, so indices are consistent and
    records from different threads never interleave inside the sink.
    """

    def __init__(
        self,
        writer: TraceWriter,
        *,
        process_id: int,
        max_consecutive_failures: int = 64,
    ) -> None:
        self._writer = writer
        self._process_id = process_id
        self._max_consecutive_failures = max_consecutive_failures
        self._lock = threading.Lock()
        self._strings = StringTable()
        self._threads = ThreadTable()
        self._start_ns = time.perf_counter_ns()

        self._available = True
        self._consecutive_failures = 0
        self._written_count = 0
        self._failure_count = 0
        self._drop_count = 0
        self._truncated_count = 0
        self._truncated_string_count = 0

    def now(self) -> int:
        """Nanoseconds since the emitter was created."""
        return time.perf_counter_ns() - self._start_ns

    def write_header(self, provider_id: int, provider_name: str) -> None:
        """Write the magic number, clock and provider records."""
        with self._lock:
            try:
                self._writer.write_magic()
                self._writer.write_initialization(TICKS_PER_SECOND)
                self._writer.write_provider_info(provider_id, provider_name)
            except Exception:  # noqa: BLE001
                self._record_failure("trace header")

    def emit(self, record: TraceRecord) -> bool:
        """Intern and write one record. Returns True if it was written."""
        args = record.args
        if len(args) > MAX_ARGUMENTS:
            logger.warning(
                "Record %r has %d arguments; keeping the first %d",
                record.name, len(args), MAX_ARGUMENTS,
            )
            args = args[:MAX_ARGUMENTS]
            truncated = True
        else:
            truncated = False

        with self._lock:
            if truncated:
                self._truncated_count += 1
            if not self._available:
                self._drop_count += 1
                return False
            if self._writer.closed:
                self._mark_unavailable("sink is closed")
                self._drop_count += 1
                return False
            try:
                self._write(record, args)
            except Exception:  # noqa: BLE001
                self._record_failure(f"{record.kind.value} record {record.name!r}")
                return False
            self._consecutive_failures = 0
            self._written_count += 1
            return True

    def _intern_string(self, value: str) -> int | str:
        ref = self._strings.intern(value, self._define_string)
        if isinstance(ref, str):
            self._check_string_length(ref)
        return ref

    def _define_string(self, index: int, value: str) -> None:
        self._writer.write_string(index, value)
        self._check_string_length(value)

    def _check_string_length(self, value: str) -> None:
        if len(value) <= _SAFE_STRING_CHARS:
            return
        size = len(value.encode("utf-8", errors="replace"))
        if size > MAX_STRING_BYTES:
            self._truncated_string_count += 1
            logger.warning(
                "String of %d bytes cut to %d bytes: %.40r...", size, MAX_STRING_BYTES, value
            )

    def _write(self, record: TraceRecord, args: tuple[ArgumentValue, ...]) -> None:
        name_ref = self._intern_string(record.name)
        category_ref = self._intern_string(record.category)
        thread_ref = self._threads.intern(
            self._process_id, record.thread_koid, self._writer.write_thread
        )
        wire_args = [
            WireArgument(
                self._intern_string(arg.name),
                arg.kind,
                self._intern_string(arg.value) if arg.kind is ArgType.STRING else arg.value,
            )
            for arg in args
        ]

        if record.kind is RecordKind.DURATION_BEGIN:
            write = self._writer.begin_duration
        elif record.kind is RecordKind.DURATION_END:
            write = self._writer.end_duration
        else:
            write = self._writer.instant
        write(record.timestamp, name_ref, category_ref, thread_ref, wire_args)

    def _record_failure(self, what: str) -> None:
        self._failure_count += 1
        self._consecutive_failures += 1
        logger.debug("Failed to write %s", what, exc_info=True)
        if self._writer.closed:
            self._mark_unavailable("sink is closed")
        elif self._consecutive_failures >= self._max_consecutive_failures:
            self._mark_unavailable(f"{self._consecutive_failures} consecutive write failures")

    def _mark_unavailable(self, reason: str) -> None:
        if self._available:
            self._available = False
            logger.warning("Trace output disabled: %s", reason)

    def flush(self) -> None:
        with self._lock:
            if not self._available or self._writer.closed:
                return
            try:
                self._writer.flush()
            except Exception:  # noqa: BLE001
                self._record_failure("flush")

    def close(self, *, close_writer: bool = True) -> None:
        """Flush (and optionally close) the writer; later records are dropped."""
        with self._lock:
            try:
                if not self._writer.closed:
                    self._writer.flush()
                    if close_writer:
                        self._writer.close()
            except Exception:  # noqa: BLE001
                logger.debug("Failed to close trace writer", exc_info=True)
            self._available = False

    @property
    def is_available(self) -> bool:
        return self._available

    @property
    def written_count(self) -> int:
        """Number of event records written."""
        return self._written_count

    @property
    def failure_count(self) -> int:
        """Number of failed writes (records, header or flush)."""
        return self._failure_count

    @property
    def drop_count(self) -> int:
        """Number of records skipped because output was unavailable."""
        return self._drop_count

    @property
    def truncated_count(self) -> int:
        """Number of records whose argument list was cut to fit the format."""
        return self._truncated_count

    @property
    def truncated_string_count(self) -> int:
        """Number of strings cut to the format's maximum string length."""
        return self._truncated_string_count

    @property
    def strings(self) -> StringTable:
        return self._strings

    @property
    def threads(self) -> ThreadTable:
        return self._threads
