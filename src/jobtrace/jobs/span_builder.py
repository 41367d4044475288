"""Root span naming and attributes for jobs."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from jobtrace.tracing.span import Span, SpanKind

HTTP_HOST_ATTRIBUTE = "http.host"
SEPARATOR = "/"


def _segment(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return SEPARATOR.join(_segment(item) for item in value)
    return str(value)


class JobSpanBuilder:
    """Derives a job's root span name and attributes from its descriptor.

    A missing name key leaves an empty segment in the name; a missing
    attribute key is skipped.
    """

    def __init__(
        self,
        trace_prefix: str,
        name_keys: Sequence[str],
        attribute_keys: Sequence[str],
        host_name: str,
    ):
        self.trace_prefix = trace_prefix
        self.name_keys = tuple(name_keys)
        self.attribute_keys = tuple(attribute_keys)
        self.host_name = host_name

    @classmethod
    def from_settings(cls, settings) -> JobSpanBuilder:
        return cls(
            trace_prefix=settings.trace_prefix,
            name_keys=settings.job_attrs_for_trace_name,
            attribute_keys=settings.job_attrs_for_span,
            host_name=settings.host_name,
        )

    def build_name(self, job: Mapping[str, Any]) -> str:
        """Join the prefix and the named descriptor values, e.g. ``jobs/default/MailerJob``.

        List and tuple values are joined recursively with the same separator,
        so ``args=[42, "welcome"]`` contributes ``42/welcome``.
        """
        segments = [self.trace_prefix]
        segments.extend(_segment(job.get(key)) for key in self.name_keys)
        return SEPARATOR.join(segments)

    def span_attributes(self, job: Mapping[str, Any]) -> dict[str, Any]:
        return {key: job[key] for key in self.attribute_keys if key in job}

    def configure_root(self, span: Span, job: Mapping[str, Any]) -> None:
        """Configure the root span for this job."""
        span.set_kind(SpanKind.SERVER)
        span.set_attribute(HTTP_HOST_ATTRIBUTE, self.host_name)
        for key, value in self.span_attributes(job).items():
            span.set_attribute(key, value)
