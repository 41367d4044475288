"""Span tree export.

Provides:
- The ``SpanTreeExporter`` contract every backend implements
- ``ExportScheduler``, which hands each traced job's tree to an exporter
  exactly once when the job's root scope closes
- Reference exporters: logging (the default), console, in-memory and a
  background batching wrapper
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from jobtrace.errors import ExportError, ScopeError
from jobtrace.tracing.context import TraceContext
from jobtrace.tracing.span import SpanTree

logger = logging.getLogger(__name__)


class SpanTreeExporter(ABC):
    """Abstract base for span tree exporters."""

    @abstractmethod
    def export(self, tree: SpanTree, max_frames: int) -> None:
        """Export a finalized span tree.

        Args:
            tree: Closed span tree, already truncated to ``max_frames`` spans.
                The exporter may keep or discard it.
            max_frames: The bound the tree was truncated to

        Raises:
            Exception: Any failure to accept the tree
        """

    def export_batch(self, batch: Iterable[tuple[SpanTree, int]]) -> None:
        """Export several trees; exporters with a bulk API override this."""
        for tree, max_frames in batch:
            self.export(tree, max_frames)

    def shutdown(self) -> None:
        """Release exporter resources."""


class LoggingExporter(SpanTreeExporter):
    """Exporter that writes each tree as one JSON log record."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO):
        self.log = log or logging.getLogger("jobtrace.exporter")
        self.level = level

    def export(self, tree: SpanTree, max_frames: int) -> None:
        self.log.log(
            self.level,
            json.dumps(tree.to_dict(), default=str),
            extra={"trace_id": tree.trace_id},
        )


class ConsoleExporter(SpanTreeExporter):
    """Exporter that prints trees to console (for debugging)."""

    def __init__(self, pretty: bool = True):
        """Initialize console exporter.

        Args:
            pretty: Use pretty-printed JSON
        """
        self.pretty = pretty

    def export(self, tree: SpanTree, max_frames: int) -> None:
        """Print tree to console."""
        if self.pretty:
            print(json.dumps(tree.to_dict(), indent=2, default=str))
        else:
            print(json.dumps(tree.to_dict(), default=str))


class InMemoryExporter(SpanTreeExporter):
    """Exporter that keeps every tree it receives."""

    def __init__(self):
        self._trees: list[SpanTree] = []
        self._lock = threading.Lock()

    def export(self, tree: SpanTree, max_frames: int) -> None:
        with self._lock:
            self._trees.append(tree)

    @property
    def trees(self) -> list[SpanTree]:
        with self._lock:
            return list(self._trees)

    def clear(self) -> None:
        with self._lock:
            self._trees.clear()


@dataclass
class ExportConfig:
    """Configuration for background batch export."""

    # Export batch size
    batch_size: int = 100
    # Export interval in seconds
    export_interval: float = 5.0
    # Maximum queue size
    max_queue_size: int = 10000
    # Seconds to wait for the worker thread on stop()
    shutdown_timeout: float = 5.0


class BatchExporter(SpanTreeExporter):
    """Queues trees and exports them in batches from a background thread.

    ``export`` only enqueues, so the job that produced the tree is not held
    up by the backend.
    """

    def __init__(
        self,
        exporter: SpanTreeExporter,
        config: ExportConfig | None = None,
    ):
        """Initialize batch exporter.

        Args:
            exporter: Underlying span tree exporter
            config: Export configuration
        """
        self.exporter = exporter
        self.config = config or ExportConfig()
        self._queue: queue.Queue = queue.Queue(maxsize=self.config.max_queue_size)
        self._shutdown = threading.Event()
        self._thread: threading.Thread | None = None
        self._stats_lock = threading.Lock()
        self._stats = {
            "exported": 0,
            "dropped": 0,
            "errors": 0,
        }

    def start(self) -> None:
        """Start the background export thread."""
        if self._thread and self._thread.is_alive():
            return

        self._shutdown.clear()
        self._thread = threading.Thread(
            target=self._export_loop, name="jobtrace-batch-exporter", daemon=True
        )
        self._thread.start()
        logger.info("Started span tree batch exporter")

    def stop(self) -> None:
        """Stop the background thread, flushing queued trees."""
        self._shutdown.set()
        if self._thread:
            self._thread.join(timeout=self.config.shutdown_timeout)
        self.exporter.shutdown()
        logger.info("Stopped span tree batch exporter")

    shutdown = stop

    def export(self, tree: SpanTree, max_frames: int) -> None:
        """Add a tree to the export queue, dropping it if the queue is full."""
        try:
            self._queue.put_nowait((tree, max_frames))
        except queue.Full:
            self._bump("dropped")
            logger.warning(
                "Span tree export queue is full, dropping trace %s", tree.trace_id
            )

    def _bump(self, key: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[key] += amount

    def _flush(self, batch: list[tuple[SpanTree, int]]) -> None:
        try:
            self.exporter.export_batch(batch)
        except Exception:
            self._bump("errors")
            logger.warning("Batch export of %d span trees failed", len(batch), exc_info=True)
        else:
            self._bump("exported", len(batch))

    def _drain(self) -> list[tuple[SpanTree, int]]:
        batch = []
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except queue.Empty:
                return batch

    def _export_loop(self) -> None:
        """Background thread that batches and exports trees."""
        batch: list[tuple[SpanTree, int]] = []
        last_export = time.monotonic()

        while not self._shutdown.is_set():
            try:
                batch.append(self._queue.get(timeout=0.1))
            except queue.Empty:
                pass  # poll timeout is normal control flow

            should_export = len(batch) >= self.config.batch_size or (
                batch and time.monotonic() - last_export >= self.config.export_interval
            )

            if should_export:
                self._flush(batch)
                batch = []
                last_export = time.monotonic()

        # Export remaining trees on shutdown
        batch.extend(self._drain())
        if batch:
            self._flush(batch)

    def get_stats(self) -> dict[str, int]:
        """Get export statistics."""
        with self._stats_lock:
            return self._stats.copy()


class ExportScheduler:
    """Exports a trace's span tree exactly once, when its root scope closes.

    The export runs on every exit path of the root scope. If the job body
    failed, an exporter failure is logged and dropped so the job's own
    failure reaches the caller; if the job succeeded, the exporter failure
    is raised as ``ExportError``.
    """

    def __init__(self, exporter: SpanTreeExporter, max_frames: int):
        if max_frames < 1:
            raise ValueError(f"max_frames must be at least 1, got {max_frames}")
        self.exporter = exporter
        self.max_frames = max_frames
        self._lock = threading.Lock()
        self._stats = {"exported": 0, "export_errors": 0}

    def export_on_completion(self, trace: TraceContext) -> None:
        """Arrange for ``trace`` to be exported when its root scope closes."""
        if trace.export_scheduled:
            raise ScopeError(
                f"Export already scheduled for trace {trace.trace_id}",
                {"trace_id": trace.trace_id},
            )
        trace.on_complete(self._export)
        trace.export_scheduled = True

    def _bump(self, key: str) -> None:
        with self._lock:
            self._stats[key] += 1

    def _export(self, trace: TraceContext, error: BaseException | None) -> None:
        try:
            tree = trace.tree.truncate(self.max_frames)
            self.exporter.export(tree, self.max_frames)
        except Exception as e:
            self._bump("export_errors")
            if error is not None:
                logger.error(
                    "Export of trace %s failed while job failure %s was propagating",
                    trace.trace_id,
                    type(error).__name__,
                    exc_info=True,
                    extra={"trace_id": trace.trace_id},
                )
                return
            raise ExportError(
                f"Failed to export trace {trace.trace_id}: {e}",
                trace_id=trace.trace_id,
                cause=e,
            ) from e

        self._bump("exported")
        logger.debug(
            "Exported trace %s (%d spans, %d dropped)",
            trace.trace_id,
            tree.span_count,
            tree.dropped_spans,
            extra={"trace_id": trace.trace_id},
        )

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            return self._stats.copy()


# Process-wide default exporter
_default_exporter: SpanTreeExporter | None = None
_exporter_lock = threading.Lock()


def get_default_exporter() -> SpanTreeExporter:
    """Get the default exporter, creating a ``LoggingExporter`` if unset."""
    global _default_exporter

    with _exporter_lock:
        if _default_exporter is None:
            _default_exporter = LoggingExporter()
        return _default_exporter


def set_default_exporter(exporter: SpanTreeExporter | None) -> None:
    """Replace the default exporter; None restores the logging exporter."""
    global _default_exporter

    with _exporter_lock:
        if _default_exporter is not None and _default_exporter is not exporter:
            _default_exporter.shutdown()
        _default_exporter = exporter
