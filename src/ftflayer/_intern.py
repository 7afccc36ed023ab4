"""Interning tables for strings and threads.

Indices are handed out on first sight, starting at 1, and are never reused.
When a table runs out of indices the value is returned inline instead, so a
full table degrades to larger records rather than to wrong references.

The tables are not synchronized on their own; the emitter calls them from
inside its write lock so that "insert, then write the definition record"
happens as one unit.
"""

from __future__ import annotations

from collections.abc import Callable

from ftflayer._ftf import MAX_STRING_INDEX, MAX_THREAD_INDEX
from ftflayer._types import StringRef, ThreadRef

StringDefiner = Callable[[int, str], None]
ThreadDefiner = Callable[[int, int, int], None]


class StringTable:
    """Maps strings to 15-bit string-table indices."""

    def __init__(self, capacity: int = MAX_STRING_INDEX) -> None:
        self._by_value: dict[str, int] = {}
        self._next_index = 1
        self._capacity = capacity

    def intern(self, value: str, define: StringDefiner) -> StringRef:
        """Return the index for ``value``, defining it on first sight.

        ``define(index, value)`` writes the definition record. If it raises,
        nothing is committed and the exception propagates to the caller.
        The empty string is always index 0 and takes no table slot.
        """
        if not value:
            return 0
        index = self._by_value.get(value)
        if index is not None:
            return index
        if self._next_index > self._capacity:
            return value

        index = self._next_index
        define(index, value)
        self._by_value[value] = index
        self._next_index += 1
        return index

    def __len__(self) -> int:
        return len(self._by_value)


class ThreadTable:
    """Maps (process koid, thread koid) pairs to 8-bit thread-table indices."""

    def __init__(self, capacity: int = MAX_THREAD_INDEX) -> None:
        self._by_koid: dict[tuple[int, int], int] = {}
        self._next_index = 1
        self._capacity = capacity

    def intern(self, process_koid: int, thread_koid: int, define: ThreadDefiner) -> ThreadRef:
        """Return the index for the thread, defining it on first sight."""
        key = (process_koid, thread_koid)
        index = self._by_koid.get(key)
        if index is not None:
            return index
        if self._next_index > self._capacity:
            return key

        index = self._next_index
        define(index, process_koid, thread_koid)
        self._by_koid[key] = index
        self._next_index += 1
        return index

    def __len__(self) -> int:
        return len(self._by_koid)
