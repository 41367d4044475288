"""Shared helpers for CLI modules: console and span tree rendering."""

from __future__ import annotations

from rich.console import Console
from rich.tree import Tree

from jobtrace.tracing.span import SpanTree

console = Console()

_STATUS_STYLES = {"ok": "green", "error": "red", "running": "yellow"}


def render_span_tree(tree: SpanTree) -> Tree:
    """Build a rich Tree mirroring a span tree."""
    nodes = {}
    rendered = None
    for span in tree.walk():
        style = _STATUS_STYLES.get(span.status, "white")
        label = (
            f"[bold]{span.name}[/bold] [dim]{span.kind.value}[/dim] "
            f"[{style}]{span.status}[/{style}] {span.duration_ms:.1f}ms"
        )
        if span is tree.root:
            rendered = Tree(label)
            nodes[id(span)] = rendered
        else:
            nodes[id(span)] = nodes[id(span.parent)].add(label)

    if tree.dropped_spans:
        rendered.add(f"[dim]... {tree.dropped_spans} spans dropped[/dim]")
    return rendered
