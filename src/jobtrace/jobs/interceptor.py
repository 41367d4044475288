"""Job runner middleware that traces each job execution.

For every job the interceptor:
- Asks the sampling gate whether to trace it; untraced jobs run untouched.
  With propagation on, a job whose upstream trace is flagged not sampled is
  never traced
- Wraps the rest of the chain in a root span named after the job
- Copies the configured job fields onto the root span
- Exports the finished span tree once, whether the job returned or raised

Usage:
    runner = JobRunner()
    runner.middleware.add(JobTracingInterceptor(exporter=ConsoleExporter()))
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Awaitable, Callable, Generator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from jobtrace.config import TracingSettings, get_settings
from jobtrace.jobs.sampling import SamplingGate
from jobtrace.jobs.span_builder import JobSpanBuilder
from jobtrace.tracing.context import TraceContext, open_root_scope
from jobtrace.tracing.export import ExportScheduler, SpanTreeExporter, get_default_exporter
from jobtrace.tracing.propagation import PropagatedContext, extract_job_trace_context

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JobTracingInterceptor:
    """Wraps job execution in a root span and exports the resulting tree."""

    def __init__(
        self,
        exporter: SpanTreeExporter | None = None,
        settings: TracingSettings | None = None,
        *,
        sampler: SamplingGate | None = None,
        span_builder: JobSpanBuilder | None = None,
        max_frames: int | None = None,
    ):
        """Initialize the interceptor.

        Args:
            exporter: Receives each finished span tree. Defaults to the
                process-wide default exporter.
            settings: Tracing settings. Defaults to ``get_settings()``.
            sampler: Overrides the gate built from ``settings.sample_proc``
            span_builder: Overrides the builder built from ``settings``
            max_frames: Overrides ``settings.default_max_stack_frames``
        """
        self.settings = settings or get_settings()
        self.exporter = exporter or get_default_exporter()
        self.sampler = sampler or SamplingGate(self.settings.sample_proc)
        self.span_builder = span_builder or JobSpanBuilder.from_settings(self.settings)
        self.scheduler = ExportScheduler(
            self.exporter,
            self.settings.default_max_stack_frames if max_frames is None else max_frames,
        )
        self._lock = threading.Lock()
        self._stats = {
            "sampled": 0,
            "bypassed": 0,
            "job_errors": 0,
        }

    def __call__(
        self,
        worker: Any,
        job: Mapping[str, Any],
        queue: str,
        next_handler: Callable[[], T],
    ) -> T:
        """Middleware entry point used by ``JobRunner``."""
        return self.handle(job, next_handler)

    def _bump(self, key: str) -> None:
        with self._lock:
            self._stats[key] += 1

    def _parent_context(self, job: Mapping[str, Any]) -> PropagatedContext | None:
        if not self.settings.propagate_trace_context:
            return None
        return extract_job_trace_context(job)

    def _should_trace(
        self, job: Mapping[str, Any], parent: PropagatedContext | None
    ) -> bool:
        if parent is not None and not parent.sampled:
            self._bump("bypassed")
            logger.debug("Job %s not sampled upstream; running without trace", job.get("jid"))
            return False
        if self.sampler.should_sample(job):
            self._bump("sampled")
            return True
        self._bump("bypassed")
        logger.debug("Job %s not sampled; running without trace", job.get("jid"))
        return False

    @contextmanager
    def _root_scope(
        self, job: Mapping[str, Any], parent: PropagatedContext | None
    ) -> Generator[TraceContext, None, None]:
        name = self.span_builder.build_name(job)

        with open_root_scope(
            name,
            trace_id=parent.trace_id if parent else None,
            parent_span_id=parent.parent_span_id if parent else None,
        ) as trace:
            self.scheduler.export_on_completion(trace)
            self.span_builder.configure_root(trace.root_span, job)
            try:
                yield trace
            except BaseException:
                self._bump("job_errors")
                raise

    def handle(self, job: Mapping[str, Any], next_handler: Callable[[], T]) -> T:
        """Run ``next_handler`` for ``job``, tracing it if sampled.

        The job's return value or exception passes through unchanged.
        """
        parent = self._parent_context(job)
        if not self._should_trace(job, parent):
            return next_handler()

        with self._root_scope(job, parent):
            return next_handler()

    async def handle_async(
        self,
        job: Mapping[str, Any],
        next_handler: Callable[[], Awaitable[T]],
    ) -> T:
        """Async variant of ``handle`` for coroutine-based workers.

        Cancellation of the awaiting task still closes and exports the trace.
        """
        parent = self._parent_context(job)
        if not self._should_trace(job, parent):
            return await next_handler()

        with self._root_scope(job, parent):
            return await next_handler()

    def get_stats(self) -> dict[str, int]:
        """Get sampling, failure and export counters."""
        with self._lock:
            stats = self._stats.copy()
        stats.update(self.scheduler.get_stats())
        return stats
