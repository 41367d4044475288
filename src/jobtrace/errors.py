"""jobtrace Error Hierarchy.

Structured exception types for the job tracing interceptor. Failures raised by
the job body itself are never wrapped in these types.
"""

from __future__ import annotations


class JobTraceError(Exception):
    """Base error for all jobtrace exceptions."""

    code = "JOBTRACE_ERROR"

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class SamplingError(JobTraceError):
    """The sampling predicate raised while evaluating a job."""

    code = "SAMPLING_FAILED"

    def __init__(self, message: str, cause: Exception = None):
        details = {}
        if cause:
            details["cause"] = repr(cause)
        super().__init__(message, details)
        self.cause = cause


class ExportError(JobTraceError):
    """The exporter failed to accept a finished span tree."""

    code = "EXPORT_FAILED"

    def __init__(self, message: str, trace_id: str = None, cause: Exception = None):
        details = {"trace_id": trace_id}
        if cause:
            details["cause"] = repr(cause)
        super().__init__(message, details)
        self.trace_id = trace_id
        self.cause = cause


# Scope Errors
class ScopeError(JobTraceError):
    """A trace or span scope was used outside its lifecycle."""

    code = "SCOPE_ERROR"


class SpanClosedError(ScopeError):
    """Attempted to mutate or end a span that is already closed."""

    code = "SPAN_CLOSED"

    def __init__(self, message: str, span_id: str = None):
        super().__init__(message, {"span_id": span_id})
        self.span_id = span_id
