#!/usr/bin/env python3
"""Instrumented-thread overhead benchmark.

Measures the hot-path cost of:
  1. an ineligible span (filter rejects, nothing stored)
  2. an eligible span (intern + Begin/End encode + sink write)
  3. an eligible instant event
  4. a span with typed attributes

Usage:
    uv run python benchmarks/bench_overhead.py
"""

from __future__ import annotations

import io
import time
from collections.abc import Callable

from ftflayer._layer import FtfLayer
from ftflayer._span import Span


def _timed(body: Callable[[], None], iterations: int, warmup: int = 1000) -> float:
    for _ in range(warmup):
        body()

    start = time.perf_counter_ns()
    for _ in range(iterations):
        body()
    elapsed = time.perf_counter_ns() - start

    return elapsed / iterations


def bench_ineligible_span(iterations: int = 200_000) -> float:
    """Benchmark: span lifecycle that the filter rejects."""
    layer = FtfLayer(io.BytesIO())

    def body() -> None:
        with Span("bench", layer=layer, attributes={"id": 1}):
            pass

    return _timed(body, iterations)


def bench_eligible_span(iterations: int = 200_000) -> float:
    """Benchmark: full span enter -> exit written as FTF."""
    layer = FtfLayer(io.BytesIO())
    attributes = {"ftf": True, "category": "bench"}

    def body() -> None:
        with Span("bench", layer=layer, attributes=attributes):
            pass

    return _timed(body, iterations)


def bench_instant_event(iterations: int = 500_000) -> float:
    """Benchmark: one instant event with a single integer argument."""
    layer = FtfLayer(io.BytesIO())
    attributes = {"ftf": True, "rows": 42}

    def body() -> None:
        layer.on_event("rows", attributes)

    return _timed(body, iterations)


def bench_span_with_attributes(iterations: int = 200_000) -> float:
    """Benchmark: eligible span carrying string, int, float and bool args."""
    layer = FtfLayer(io.BytesIO())
    attributes = {
        "ftf": True,
        "table": "users",
        "limit": 100,
        "ratio": 0.5,
        "cached": False,
    }

    def body() -> None:
        with Span("query", layer=layer, attributes=attributes):
            pass

    return _timed(body, iterations)


def main() -> None:
    print("=" * 60)
    print("ftflayer Overhead Benchmark")
    print("=" * 60)

    results: list[tuple[str, float, str]] = []

    ns = bench_ineligible_span()
    target = "< 5μs"
    status = "PASS" if ns < 5000 else "WARN" if ns < 10000 else "FAIL"
    results.append(("Span lifecycle (ineligible)", ns, f"{status} (target {target})"))

    ns = bench_eligible_span()
    target = "< 20μs"
    status = "PASS" if ns < 20000 else "WARN" if ns < 40000 else "FAIL"
    results.append(("Span lifecycle (eligible)", ns, f"{status} (target {target})"))

    ns = bench_instant_event()
    target = "< 10μs"
    status = "PASS" if ns < 10000 else "WARN" if ns < 20000 else "FAIL"
    results.append(("Instant event (1 arg)", ns, f"{status} (target {target})"))

    ns = bench_span_with_attributes()
    target = "< 30μs"
    status = "PASS" if ns < 30000 else "WARN" if ns < 60000 else "FAIL"
    results.append(("Span + 4 typed args", ns, f"{status} (target {target})"))

    print()
    for name, ns_val, note in results:
        if ns_val >= 1000:
            display = f"{ns_val / 1000:.2f}μs"
        else:
            display = f"{ns_val:.0f}ns"
        print(f"  {name:40s}  {display:>10s}   {note}")

    print()
    all_pass = all("PASS" in r[2] or "WARN" in r[2] for r in results)
    if all_pass:
        print("All benchmarks within acceptable range.")
    else:
        print("WARNING: Some benchmarks exceeded target. Review above.")


if __name__ == "__main__":
    main()
