"""Trace context management for job tracing.

The active trace and the current span live in context variables, so every
thread and every asyncio task sees only the spans of the job it is running.
Scopes are context managers and restore the previous values on exit through
``ContextVar.reset``, which gives nested scopes strict LIFO behaviour.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from jobtrace.errors import ScopeError
from jobtrace.tracing.span import (
    Span,
    SpanKind,
    SpanTree,
    _generate_span_id,
    _generate_trace_id,
)

logger = logging.getLogger(__name__)

CompletionCallback = Callable[["TraceContext", BaseException | None], None]


class TraceState(str, Enum):
    """Lifecycle of a traced job execution."""

    OPEN = "open"
    EXPORTING = "exporting"
    CLOSED = "closed"


def _describe(error: BaseException) -> str:
    try:
        text = str(error)
    except Exception:
        logger.debug("str() failed on %s", type(error).__name__, exc_info=True)
        text = ""
    return text or type(error).__name__


@dataclass(eq=False)
class TraceContext:
    """The span tree of one traced execution and its completion hooks."""

    trace_id: str
    root_span: Span
    state: TraceState = TraceState.OPEN
    export_scheduled: bool = False
    _callbacks: list[CompletionCallback] = field(default_factory=list, repr=False)

    @classmethod
    def new(
        cls,
        name: str = "root",
        attributes: dict[str, Any] | None = None,
        kind: SpanKind = SpanKind.UNSPECIFIED,
    ) -> TraceContext:
        """Create a new trace context with an unattached root span."""
        trace_id = _generate_trace_id()
        root_span = Span(
            span_id=_generate_span_id(),
            trace_id=trace_id,
            name=name,
            kind=kind,
            attributes=dict(attributes or {}),
        )
        return cls(trace_id=trace_id, root_span=root_span)

    @classmethod
    def from_parent(
        cls,
        trace_id: str,
        parent_span_id: str,
        name: str = "root",
        attributes: dict[str, Any] | None = None,
        kind: SpanKind = SpanKind.UNSPECIFIED,
    ) -> TraceContext:
        """Create a trace context continuing a remote parent span."""
        root_span = Span(
            span_id=_generate_span_id(),
            trace_id=trace_id,
            name=name,
            kind=kind,
            parent_span_id=parent_span_id,
            attributes=dict(attributes or {}),
        )
        return cls(trace_id=trace_id, root_span=root_span)

    @property
    def tree(self) -> SpanTree:
        return SpanTree(self.root_span)

    def on_complete(self, callback: CompletionCallback) -> None:
        """Register a callback run once the root scope has closed."""
        if self.state is not TraceState.OPEN:
            raise ScopeError(
                f"Trace {self.trace_id} is {self.state.value}; cannot register callbacks",
                {"trace_id": self.trace_id},
            )
        self._callbacks.append(callback)

    def close(self, error: BaseException | None = None) -> None:
        """End every open span, then run the completion callbacks.

        ``error`` is the failure propagating out of the root scope, if any.
        """
        if self.state is not TraceState.OPEN:
            raise ScopeError(
                f"Trace {self.trace_id} already {self.state.value}",
                {"trace_id": self.trace_id},
            )

        try:
            self._end_open_spans(error)
        finally:
            self.state = TraceState.EXPORTING
            try:
                for callback in self._callbacks:
                    callback(self, error)
            finally:
                self.state = TraceState.CLOSED

    def _end_open_spans(self, error: BaseException | None) -> None:
        for span in self.root_span.open_descendants():
            logger.warning(
                "Span '%s' still open when root scope closed; ending it",
                span.name,
                extra={"trace_id": self.trace_id, "span_id": span.span_id},
            )
            span.end("error", "span left open when root scope closed")

        if self.root_span.is_closed:
            return
        if error is None:
            self.root_span.end("ok")
        else:
            self.root_span.attributes["error.type"] = type(error).__name__
            self.root_span.end("error", _describe(error))

    def to_dict(self) -> dict[str, Any]:
        """Convert trace to dictionary."""
        return {
            "state": self.state.value,
            **self.tree.to_dict(),
        }


# Context variables for trace propagation
_trace_context: ContextVar[TraceContext | None] = ContextVar("trace_context", default=None)
_current_span: ContextVar[Span | None] = ContextVar("current_span", default=None)


def get_current_trace() -> TraceContext | None:
    """Get the trace context of the current execution context."""
    return _trace_context.get()


def get_current_span() -> Span | None:
    """Get the current span."""
    return _current_span.get()


@contextmanager
def open_root_scope(
    name: str = "root",
    *,
    trace_id: str | None = None,
    parent_span_id: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Generator[TraceContext, None, None]:
    """Open a root scope for a new trace.

    The root span is current inside the block. On exit, whether the block
    returned or raised, the context variables are restored and the trace is
    closed, which ends its spans and runs its completion callbacks.

    Usage:
        with open_root_scope("jobs/default/MailerJob") as trace:
            trace.root_span.set_attribute("queue", "default")
    """
    if trace_id and parent_span_id:
        trace = TraceContext.from_parent(trace_id, parent_span_id, name, attributes)
    else:
        trace = TraceContext.new(name, attributes)

    trace_token = _trace_context.set(trace)
    span_token = _current_span.set(trace.root_span)
    error: BaseException | None = None
    try:
        yield trace
    except BaseException as e:
        error = e
        raise
    finally:
        _current_span.reset(span_token)
        _trace_context.reset(trace_token)
        trace.close(error)


def _end_scope(span: Span, status: str, error: str | None = None) -> None:
    for leaked in span.open_descendants():
        leaked.end("error", "span left open when parent scope closed")
    if not span.is_closed:
        span.end(status, error)


@contextmanager
def span_context(
    name: str,
    attributes: dict[str, Any] | None = None,
    kind: SpanKind = SpanKind.UNSPECIFIED,
) -> Generator[Span | None, None, None]:
    """Context manager for a child of the current span.

    Yields None when no open span is current, so instrumented code runs the
    same way inside and outside a traced job.

    Usage:
        with span_context("smtp.send") as span:
            if span:
                span.set_attribute("recipients", 3)
    """
    parent = _current_span.get()
    if parent is None or parent.is_closed:
        yield None
        return

    span = parent.start_child(name, attributes, kind)
    token = _current_span.set(span)
    try:
        yield span
    except BaseException as e:
        _current_span.reset(token)
        _end_scope(span, "error", _describe(e))
        raise
    else:
        _current_span.reset(token)
        _end_scope(span, "ok")


def traced(
    name: str | None = None,
    attributes: dict[str, Any] | None = None,
    kind: SpanKind = SpanKind.UNSPECIFIED,
) -> Callable[[Callable], Callable]:
    """Decorator running a function inside a child span.

    Works for both plain and ``async def`` functions.

    Usage:
        @traced("render-template")
        def render(...):
            ...
    """

    def decorator(func: Callable) -> Callable:
        span_name = name or func.__qualname__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with span_context(span_name, attributes, kind):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with span_context(span_name, attributes, kind):
                return func(*args, **kwargs)

        return wrapper

    return decorator


def get_trace_logging_context() -> dict[str, Any]:
    """Get trace context for logging.

    Returns dict with trace_id and span_id if available.
    """
    trace = get_current_trace()
    if not trace:
        return {}

    context: dict[str, Any] = {"trace_id": trace.trace_id}
    span = get_current_span()
    if span:
        context["span_id"] = span.span_id
        if span.parent_span_id:
            context["parent_span_id"] = span.parent_span_id
    return context
