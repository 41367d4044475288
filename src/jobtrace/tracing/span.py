"""Spans and span trees.

A span owns its children; the parent link is a plain back-reference. Spans
only ever gain children, so a tree built from a single root is acyclic.
"""

from __future__ import annotations

import secrets
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from jobtrace.errors import SpanClosedError


def _generate_trace_id() -> str:
    """Generate a W3C compliant 128-bit trace ID (32 hex chars)."""
    return secrets.token_hex(16)


def _generate_span_id() -> str:
    """Generate a W3C compliant 64-bit span ID (16 hex chars)."""
    return secrets.token_hex(8)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SpanKind(str, Enum):
    """Role of a span in the exchange it records."""

    UNSPECIFIED = "unspecified"
    SERVER = "server"
    CLIENT = "client"


@dataclass(eq=False)
class Span:
    """A single timed unit of work.

    Once ``end_time`` is set the span is closed: its timing, kind and
    attributes can no longer change.
    """

    span_id: str
    trace_id: str
    name: str
    kind: SpanKind = SpanKind.UNSPECIFIED
    parent_span_id: str | None = None
    start_time: datetime = field(default_factory=_utcnow)
    end_time: datetime | None = None
    status: str = "running"  # running, ok, error
    attributes: dict[str, Any] = field(default_factory=dict)
    events: list[dict[str, Any]] = field(default_factory=list)
    parent: Span | None = field(default=None, repr=False)
    children: list[Span] = field(default_factory=list, repr=False)

    @property
    def is_closed(self) -> bool:
        return self.end_time is not None

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0
        return (self.end_time - self.start_time).total_seconds() * 1000

    def _check_open(self, action: str) -> None:
        if self.end_time is not None:
            raise SpanClosedError(
                f"Cannot {action} on closed span '{self.name}'", span_id=self.span_id
            )

    def start_child(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        kind: SpanKind = SpanKind.UNSPECIFIED,
    ) -> Span:
        """Create a child span owned by this span."""
        self._check_open("start a child")
        child = Span(
            span_id=_generate_span_id(),
            trace_id=self.trace_id,
            name=name,
            kind=kind,
            parent_span_id=self.span_id,
            attributes=dict(attributes or {}),
            parent=self,
        )
        self.children.append(child)
        return child

    def end(self, status: str = "ok", error: str | None = None):
        """Mark span as completed."""
        self._check_open("end")
        if error:
            self.attributes["error"] = error
        self.status = status
        self.end_time = _utcnow()

    def add_event(self, name: str, attributes: dict[str, Any] | None = None):
        """Add an event to the span."""
        self._check_open("add an event")
        self.events.append(
            {
                "name": name,
                "timestamp": _utcnow().isoformat(),
                "attributes": attributes or {},
            }
        )

    def set_attribute(self, key: str, value: Any):
        """Set a span attribute."""
        self._check_open("set an attribute")
        self.attributes[key] = value

    def set_kind(self, kind: SpanKind):
        self._check_open("set the kind")
        self.kind = SpanKind(kind)

    def open_descendants(self) -> list[Span]:
        """Return still-running descendants, deepest first."""
        pending = [s for s in SpanTree(self).walk() if s is not self and not s.is_closed]
        pending.reverse()
        return pending

    def _copy_detached(self) -> Span:
        return Span(
            span_id=self.span_id,
            trace_id=self.trace_id,
            name=self.name,
            kind=self.kind,
            parent_span_id=self.parent_span_id,
            start_time=self.start_time,
            end_time=self.end_time,
            status=self.status,
            attributes=dict(self.attributes),
            events=[dict(e) for e in self.events],
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert span to dictionary for logging/export."""
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "parent_span_id": self.parent_span_id,
            "name": self.name,
            "kind": self.kind.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "status": self.status,
            "attributes": self.attributes,
            "events": self.events,
            "child_span_count": len(self.children),
        }


@dataclass(eq=False)
class SpanTree:
    """A root span and every span reachable through its children."""

    root: Span
    dropped_spans: int = 0

    @property
    def trace_id(self) -> str:
        return self.root.trace_id

    @property
    def span_count(self) -> int:
        return sum(1 for _ in self.walk())

    @property
    def is_finalized(self) -> bool:
        return all(span.is_closed for span in self.walk())

    def walk(self) -> Iterator[Span]:
        """Yield spans in pre-order, children in creation order."""
        # Iterative: trees may be deeper than the recursion limit.
        stack = [self.root]
        while stack:
            span = stack.pop()
            yield span
            stack.extend(reversed(span.children))

    def truncate(self, max_frames: int) -> SpanTree:
        """Return a detached copy holding at most ``max_frames`` spans.

        Spans are kept in pre-order: the root first, then depth-first with
        siblings in creation order. Every kept span's ancestors are kept too,
        so the copy stays a single connected tree.
        """
        if max_frames < 1:
            raise ValueError(f"max_frames must be at least 1, got {max_frames}")

        copies: dict[int, Span] = {}
        total = 0
        for span in self.walk():
            total += 1
            if len(copies) >= max_frames:
                continue
            copy = span._copy_detached()
            if span is not self.root:
                parent_copy = copies[id(span.parent)]
                copy.parent = parent_copy
                parent_copy.children.append(copy)
            copies[id(span)] = copy

        return SpanTree(
            root=copies[id(self.root)],
            dropped_spans=self.dropped_spans + total - len(copies),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert tree to a flat, pre-ordered dictionary."""
        return {
            "trace_id": self.trace_id,
            "dropped_spans": self.dropped_spans,
            "spans": [span.to_dict() for span in self.walk()],
        }
