"""Trace context propagation through job descriptors.

Implements the W3C Trace Context ``traceparent`` format so a job enqueued
inside a traced request can carry that trace into the worker that runs it:
- traceparent: trace/span IDs and the sampled flag
- tracestate: optional vendor-specific data, carried through untouched

See: https://www.w3.org/TR/trace-context/
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from jobtrace.tracing.context import get_current_span, get_current_trace

TRACEPARENT_KEY = "traceparent"
TRACESTATE_KEY = "tracestate"

# traceparent format: {version}-{trace_id}-{span_id}-{flags}
# Example: 00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01
TRACEPARENT_PATTERN = re.compile(r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})$")


@dataclass
class PropagatedContext:
    """Trace context extracted from a job descriptor."""

    trace_id: str
    parent_span_id: str
    sampled: bool = True
    tracestate: str | None = None


def parse_traceparent(header: str) -> tuple[str, str, str, str] | None:
    """Parse a traceparent value.

    Args:
        header: traceparent value

    Returns:
        Tuple of (version, trace_id, span_id, flags) or None if invalid
    """
    header = header.strip().lower()
    match = TRACEPARENT_PATTERN.match(header)
    if not match:
        return None

    version, trace_id, span_id, flags = match.groups()

    # Version ff is forbidden by the W3C format
    if version == "ff":
        return None

    if trace_id == "0" * 32:
        return None

    if span_id == "0" * 16:
        return None

    return version, trace_id, span_id, flags


def format_traceparent(
    trace_id: str,
    span_id: str,
    sampled: bool = True,
    version: str = "00",
) -> str:
    """Format a traceparent value.

    Args:
        trace_id: 32 hex char trace ID
        span_id: 16 hex char span ID
        sampled: Whether trace is sampled
        version: Trace context version (default "00")

    Returns:
        Formatted traceparent value
    """
    flags = "01" if sampled else "00"
    return f"{version}-{trace_id}-{span_id}-{flags}"


def extract_job_trace_context(job: Mapping[str, Any]) -> PropagatedContext | None:
    """Extract a propagated trace context from a job descriptor.

    Returns:
        PropagatedContext if the job carries a valid traceparent, None otherwise
    """
    traceparent = job.get(TRACEPARENT_KEY)
    if not isinstance(traceparent, str):
        return None

    parsed = parse_traceparent(traceparent)
    if not parsed:
        return None

    _version, trace_id, span_id, flags = parsed
    tracestate = job.get(TRACESTATE_KEY)

    return PropagatedContext(
        trace_id=trace_id,
        parent_span_id=span_id,
        sampled=(int(flags, 16) & 0x01) == 0x01,
        tracestate=tracestate if isinstance(tracestate, str) else None,
    )


def inject_job_trace_context(
    job: Mapping[str, Any],
    tracestate: str | None = None,
) -> dict[str, Any]:
    """Return a copy of ``job`` carrying the current trace context.

    The descriptor is returned unchanged (as a copy) when no span is current.
    """
    injected = dict(job)
    trace = get_current_trace()
    span = get_current_span()
    if trace is None or span is None:
        return injected

    injected[TRACEPARENT_KEY] = format_traceparent(trace.trace_id, span.span_id)
    if tracestate:
        injected[TRACESTATE_KEY] = tracestate
    return injected
