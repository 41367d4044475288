"""Tests for spans and span trees."""

import pytest

from jobtrace.errors import SpanClosedError
from jobtrace.tracing.span import (
    Span,
    SpanKind,
    SpanTree,
    _generate_span_id,
    _generate_trace_id,
)


def _chain(depth: int) -> Span:
    """Root with ``depth`` nested descendants, one per level."""
    root = Span(span_id="root", trace_id="t" * 32, name="root")
    current = root
    for level in range(1, depth + 1):
        current = current.start_child(f"level-{level}")
    return root


class TestIdGeneration:
    """Tests for trace and span ID generation."""

    def test_generate_trace_id_length(self):
        """Trace ID is 32 hex characters."""
        trace_id = _generate_trace_id()
        assert len(trace_id) == 32
        assert all(c in "0123456789abcdef" for c in trace_id)

    def test_generate_span_id_length(self):
        """Span ID is 16 hex characters."""
        span_id = _generate_span_id()
        assert len(span_id) == 16
        assert all(c in "0123456789abcdef" for c in span_id)


class TestSpan:
    """Tests for Span class."""

    def test_create_span(self):
        """Test creating a span."""
        span = Span(span_id="abc123", trace_id="def456", name="test-span")

        assert span.name == "test-span"
        assert span.kind is SpanKind.UNSPECIFIED
        assert span.status == "running"
        assert span.end_time is None
        assert span.parent is None
        assert span.children == []

    def test_start_child_links_both_ways(self):
        """Child records its parent; parent owns the child."""
        parent = Span(span_id="p", trace_id="trace1", name="parent")
        child = parent.start_child("child", {"rows": 3}, SpanKind.CLIENT)

        assert child.parent is parent
        assert child.parent_span_id == "p"
        assert child.trace_id == "trace1"
        assert child.kind is SpanKind.CLIENT
        assert child.attributes == {"rows": 3}
        assert parent.children == [child]

    def test_end_sets_end_time_and_status(self):
        """Ending a span closes it."""
        span = Span(span_id="s", trace_id="t", name="test")
        span.end()

        assert span.is_closed
        assert span.status == "ok"
        assert span.end_time >= span.start_time
        assert span.duration_ms >= 0

    def test_end_with_error(self):
        """Error message is recorded as an attribute."""
        span = Span(span_id="s", trace_id="t", name="test")
        span.end(status="error", error="Something failed")

        assert span.status == "error"
        assert span.attributes["error"] == "Something failed"

    def test_end_time_is_immutable(self):
        """A closed span cannot be ended again."""
        span = Span(span_id="s", trace_id="t", name="test")
        span.end()
        first_end = span.end_time

        with pytest.raises(SpanClosedError):
            span.end()
        assert span.end_time == first_end

    def test_attributes_last_write_wins(self):
        """Setting the same key twice keeps the last value."""
        span = Span(span_id="s", trace_id="t", name="test")
        span.set_attribute("queue", "low")
        span.set_attribute("queue", "critical")

        assert span.attributes == {"queue": "critical"}

    def test_closed_span_rejects_mutation(self):
        """Attributes, kind, events and children are frozen after close."""
        span = Span(span_id="s", trace_id="t", name="test")
        span.end()

        with pytest.raises(SpanClosedError):
            span.set_attribute("key", "value")
        with pytest.raises(SpanClosedError):
            span.set_kind(SpanKind.SERVER)
        with pytest.raises(SpanClosedError):
            span.add_event("late")
        with pytest.raises(SpanClosedError):
            span.start_child("late-child")

    def test_add_event(self):
        """Events carry a name, timestamp and attributes."""
        span = Span(span_id="s", trace_id="t", name="test")
        span.add_event("smtp.connected", {"host": "mx1"})

        assert span.events[0]["name"] == "smtp.connected"
        assert span.events[0]["attributes"] == {"host": "mx1"}
        assert "timestamp" in span.events[0]

    def test_open_descendants_deepest_first(self):
        """Open descendants are listed innermost first."""
        root = _chain(3)
        names = [s.name for s in root.open_descendants()]

        assert names == ["level-3", "level-2", "level-1"]

    def test_to_dict(self):
        """Span serialization includes kind and child count."""
        root = Span(span_id="s", trace_id="t", name="test", kind=SpanKind.SERVER)
        root.start_child("child").end()
        root.end()

        data = root.to_dict()

        assert data["kind"] == "server"
        assert data["status"] == "ok"
        assert data["child_span_count"] == 1
        assert data["end_time"] is not None


class TestSpanTree:
    """Tests for SpanTree traversal and truncation."""

    def test_walk_is_preorder(self):
        """Parents come before children, siblings in creation order."""
        root = Span(span_id="r", trace_id="t", name="root")
        a = root.start_child("a")
        a.start_child("a1")
        a.start_child("a2")
        root.start_child("b")

        names = [s.name for s in SpanTree(root).walk()]

        assert names == ["root", "a", "a1", "a2", "b"]

    def test_walk_handles_deep_trees(self):
        """Trees deeper than the recursion limit can be walked."""
        tree = SpanTree(_chain(5000))
        assert tree.span_count == 5001

    def test_truncate_nested_chain_keeps_outermost(self):
        """Ten nested spans truncated to five keeps root plus four outermost."""
        tree = SpanTree(_chain(10))

        truncated = tree.truncate(5)

        names = [s.name for s in truncated.walk()]
        assert names == ["root", "level-1", "level-2", "level-3", "level-4"]
        assert truncated.span_count == 5
        assert truncated.dropped_spans == 6

    def test_truncate_siblings_keeps_earliest(self):
        """Sequential siblings are kept in creation order."""
        root = Span(span_id="r", trace_id="t", name="root")
        for i in range(10):
            root.start_child(f"child-{i}")

        truncated = SpanTree(root).truncate(5)

        assert [c.name for c in truncated.root.children] == [
            "child-0",
            "child-1",
            "child-2",
            "child-3",
        ]
        assert truncated.dropped_spans == 6

    def test_truncate_is_deterministic(self):
        """Truncating the same tree twice yields the same spans."""
        tree = SpanTree(_chain(8))

        first = [s.span_id for s in tree.truncate(4).walk()]
        second = [s.span_id for s in tree.truncate(4).walk()]

        assert first == second

    def test_truncate_returns_detached_copy(self):
        """The truncated tree shares no span objects with the original."""
        root = _chain(2)
        tree = SpanTree(root)

        copy = tree.truncate(10)

        originals = {id(s) for s in tree.walk()}
        assert not originals & {id(s) for s in copy.walk()}
        assert [s.span_id for s in copy.walk()] == [s.span_id for s in tree.walk()]
        assert copy.dropped_spans == 0

    def test_truncate_keeps_parent_links(self):
        """Every kept span's parent is inside the truncated tree."""
        root = Span(span_id="r", trace_id="t", name="root")
        a = root.start_child("a")
        a.start_child("a1").start_child("a1x")
        root.start_child("b")

        truncated = SpanTree(root).truncate(3)
        kept = {id(s) for s in truncated.walk()}

        for span in truncated.walk():
            if span is not truncated.root:
                assert id(span.parent) in kept

    def test_truncate_rejects_non_positive_bound(self):
        """A bound below one is invalid."""
        with pytest.raises(ValueError):
            SpanTree(_chain(1)).truncate(0)

    def test_is_finalized(self):
        """A tree is finalized once every span is closed."""
        root = _chain(1)
        tree = SpanTree(root)
        assert not tree.is_finalized

        root.children[0].end()
        root.end()
        assert tree.is_finalized

    def test_to_dict_is_flat_preorder(self):
        """Serialized trees list spans in walk order."""
        root = _chain(2)
        data = SpanTree(root, dropped_spans=3).to_dict()

        assert data["trace_id"] == root.trace_id
        assert data["dropped_spans"] == 3
        assert [s["name"] for s in data["spans"]] == ["root", "level-1", "level-2"]
