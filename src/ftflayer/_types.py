"""Core types: argument variants, record kinds and trace records."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

# An interned string is either a table index or the inline string itself.
StringRef = int | str
# An interned thread is either a table index or an inline (process, thread) koid pair.
ThreadRef = int | tuple[int, int]


class ArgType(enum.Enum):
    """Closed set of argument value types supported in trace records."""

    STRING = "string"
    INT64 = "int64"
    UINT64 = "uint64"
    FLOAT = "float"
    BOOLEAN = "boolean"


class RecordKind(enum.Enum):
    """Kind of event record written to the trace."""

    INSTANT = "instant"
    DURATION_BEGIN = "duration_begin"
    DURATION_END = "duration_end"


@dataclass(frozen=True)
class ArgumentValue:
    """A typed key/value argument attached to a trace record."""

    name: str
    kind: ArgType
    value: str | int | float | bool


@dataclass(frozen=True)
class TraceRecord:
    """Immutable record candidate, resolved and written by the emitter."""

    kind: RecordKind
    timestamp: int
    name: str
    category: str
    thread_koid: int
    args: tuple[ArgumentValue, ...] = field(default_factory=tuple)
