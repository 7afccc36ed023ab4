"""ftflayer Quick Start: record selected spans and events to an FTF file."""

import ftflayer

# 1. Initialize: every opted-in span and event is written to ./test.ftf
ftflayer.init("./test.ftf", provider_name="quickstart")


# Functions opt in through their fields; children inherit the category
@ftflayer.trace(fields={"ftf": True, "category": "database", "extra": "data", "count": 100})
def my_thing(id: int, name: str) -> int:
    # Inherits the "database" category from the enclosing span
    ftflayer.event("collecting", operation="collecting", items=999)

    v = list(range(1, 1000))
    my_other(len(v))
    v.sort()

    # Overrides the category for this one event
    ftflayer.event("sorted", category="metrics", sorted=True, size=len(v))
    return id


@ftflayer.trace(fields={"ftf": True, "category": "compute", "type": "helper"})
def my_other(size: int) -> int:
    v = list(range(1, size + 1))
    ftflayer.event("sorting", action="sorting", before_first=v[0], before_last=v[-1])
    v.sort()
    ftflayer.event("sorted", category="results", after_first=v[0], after_last=v[-1])
    return 1


@ftflayer.trace  # No ftf=True, so not recorded
def my_other_thing(id: int, name: str) -> int:
    # Not recorded either: the enclosing span is not tracked
    ftflayer.event("untraced", operation="untraced", items=id)
    return id


# 2. A span with the default category
with ftflayer.span("default_category", ftf=True, id=123, name="test span"):
    ftflayer.event("message", message="Inside default category span", value=42.5)

# 3. A span with a custom category; events inherit or override it
with ftflayer.span("custom_category", ftf=True, category="rendering", id=456):
    ftflayer.event("message", message="Using parent's rendering category")
    ftflayer.event("message", ftf=True, category="io", message="Using explicit IO category")

# 4. A standalone event needs its own opt-in
ftflayer.event("message", ftf=True, category="standalone", message="Standalone event")

# 5. Spans without ftf=True are skipped, but opted-in events inside them are kept
with ftflayer.span("ignored", id=789, name="ignored span"):
    ftflayer.event("message", ftf=True, category="networking", message="Explicit category")

my_thing(42, "test")
my_other_thing(84, "second test")

# 6. Shutdown (flushes and closes the file)
ftflayer.shutdown()

with open("./test.ftf", "rb") as f:
    trace = ftflayer.read_trace(f)
for record in trace.events:
    print(f"{record.kind.value:15s} {record.category:12s} {record.name:20s} {record.arguments}")
