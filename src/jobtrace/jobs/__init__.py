"""Job-side tracing: sampling, root span construction and the interceptor."""

from jobtrace.jobs.interceptor import JobTracingInterceptor
from jobtrace.jobs.runner import (
    Job,
    JobRunner,
    JobStatus,
    MiddlewareChain,
)
from jobtrace.jobs.sampling import SamplingGate, always_sample, never_sample
from jobtrace.jobs.span_builder import HTTP_HOST_ATTRIBUTE, SEPARATOR, JobSpanBuilder

__all__ = [
    "JobTracingInterceptor",
    "SamplingGate",
    "always_sample",
    "never_sample",
    "JobSpanBuilder",
    "HTTP_HOST_ATTRIBUTE",
    "SEPARATOR",
    "JobRunner",
    "Job",
    "JobStatus",
    "MiddlewareChain",
]
