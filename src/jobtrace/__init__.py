"""jobtrace - distributed tracing for background jobs.

Wraps each job execution in a root span, attaches job metadata as span
attributes and exports the finished span tree once the job completes,
whether it succeeded or failed.
"""

from jobtrace.errors import (
    ExportError,
    JobTraceError,
    SamplingError,
    ScopeError,
    SpanClosedError,
)
from jobtrace.jobs import JobSpanBuilder, JobTracingInterceptor, SamplingGate
from jobtrace.tracing import (
    ExportScheduler,
    Span,
    SpanKind,
    SpanTree,
    SpanTreeExporter,
    TraceContext,
    open_root_scope,
    span_context,
    traced,
)

__version__ = "0.1.0"

__all__ = [
    "JobTracingInterceptor",
    "SamplingGate",
    "JobSpanBuilder",
    "ExportScheduler",
    "SpanTreeExporter",
    "Span",
    "SpanKind",
    "SpanTree",
    "TraceContext",
    "open_root_scope",
    "span_context",
    "traced",
    "JobTraceError",
    "SamplingError",
    "ExportError",
    "ScopeError",
    "SpanClosedError",
]
