"""Span capture and export for traced jobs.

Provides:
- Span trees with parent/child ownership
- Context-variable scoped trace and span state
- Exactly-once export of finished span trees
- W3C traceparent propagation through job descriptors
"""

from jobtrace.tracing.context import (
    TraceContext,
    TraceState,
    get_current_span,
    get_current_trace,
    get_trace_logging_context,
    open_root_scope,
    span_context,
    traced,
)
from jobtrace.tracing.export import (
    BatchExporter,
    ConsoleExporter,
    ExportConfig,
    ExportScheduler,
    InMemoryExporter,
    LoggingExporter,
    SpanTreeExporter,
    get_default_exporter,
    set_default_exporter,
)
from jobtrace.tracing.propagation import (
    TRACEPARENT_KEY,
    TRACESTATE_KEY,
    extract_job_trace_context,
    inject_job_trace_context,
)
from jobtrace.tracing.span import Span, SpanKind, SpanTree

__all__ = [
    # Spans
    "Span",
    "SpanKind",
    "SpanTree",
    # Context
    "TraceContext",
    "TraceState",
    "get_current_trace",
    "get_current_span",
    "get_trace_logging_context",
    "open_root_scope",
    "span_context",
    "traced",
    # Propagation
    "extract_job_trace_context",
    "inject_job_trace_context",
    "TRACEPARENT_KEY",
    "TRACESTATE_KEY",
    # Export
    "SpanTreeExporter",
    "ExportScheduler",
    "ExportConfig",
    "LoggingExporter",
    "ConsoleExporter",
    "InMemoryExporter",
    "BatchExporter",
    "get_default_exporter",
    "set_default_exporter",
]
