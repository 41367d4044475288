"""In-process background job runner with a middleware chain.

Runs registered worker callables on a thread pool. Each execution passes
through the middleware chain, so interceptors such as
``JobTracingInterceptor`` see the job descriptor and wrap the worker call.
There is no persistence, retry or scheduling.
"""

import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from jobtrace.tracing.propagation import inject_job_trace_context

logger = logging.getLogger(__name__)

Middleware = Callable[[Any, dict[str, Any], str, Callable[[], Any]], Any]


class JobStatus(str, Enum):
    """Job execution status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Job(BaseModel):
    """A queued call of a registered worker."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:24], description="Job ID")
    worker: str = Field(..., description="Registered worker name")
    queue: str = Field("default", description="Queue the job was pushed to")
    args: list[Any] = Field(default_factory=list, description="Positional worker arguments")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Extra descriptor fields, e.g. traceparent"
    )
    status: JobStatus = Field(JobStatus.PENDING, description="Current status")
    created_at: datetime = Field(default_factory=datetime.now, description="Job creation time")
    started_at: datetime | None = Field(None, description="Execution start time")
    completed_at: datetime | None = Field(None, description="Execution end time")
    result: Any = Field(None, description="Worker return value")
    error: str | None = Field(None, description="Error message if failed")

    def descriptor(self) -> dict[str, Any]:
        """The key/value view of this job handed to middleware."""
        return {
            **self.metadata,
            "jid": self.id,
            "class": self.worker,
            "queue": self.queue,
            "args": list(self.args),
            "created_at": self.created_at.timestamp(),
        }


class MiddlewareChain:
    """Ordered middleware, outermost first."""

    def __init__(self):
        self._entries: list[Middleware] = []

    def add(self, middleware: Middleware) -> None:
        self._entries.append(middleware)

    def remove(self, middleware: Middleware) -> None:
        self._entries.remove(middleware)

    def __len__(self) -> int:
        return len(self._entries)

    def invoke(
        self,
        worker: Any,
        job: dict[str, Any],
        queue: str,
        final: Callable[[], Any],
    ) -> Any:
        """Call each middleware in turn, ending with ``final``."""
        entries = list(self._entries)

        def call(index: int) -> Any:
            if index == len(entries):
                return final()
            return entries[index](worker, job, queue, lambda: call(index + 1))

        return call(0)


class JobRunner:
    """Runs jobs on a thread pool through a middleware chain."""

    def __init__(self, max_workers: int = 4):
        self.middleware = MiddlewareChain()
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="job")
        self._workers: dict[str, Callable[..., Any]] = {}
        self._jobs: dict[str, Job] = {}
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()

    def register(self, name: str, func: Callable[..., Any]) -> None:
        """Register a worker callable under ``name``."""
        with self._lock:
            self._workers[name] = func

    def worker(self, name: str | None = None) -> Callable[[Callable], Callable]:
        """Decorator registering a worker under ``name`` or its qualified name."""

        def decorator(func: Callable) -> Callable:
            self.register(name or func.__qualname__, func)
            return func

        return decorator

    def enqueue(
        self,
        worker: str,
        *args: Any,
        queue: str = "default",
        metadata: dict[str, Any] | None = None,
    ) -> Job:
        """Submit a job; the current trace context, if any, travels with it."""
        if worker not in self._workers:
            raise ValueError(f"Worker {worker} not registered")

        job = Job(
            worker=worker,
            queue=queue,
            args=list(args),
            metadata=inject_job_trace_context(metadata or {}),
        )

        with self._lock:
            self._jobs[job.id] = job
            future = self.executor.submit(self._execute_job, job.id)
            self._futures[job.id] = future
        future.add_done_callback(lambda _: self._forget_future(job.id))

        logger.info(f"Enqueued job {job.id} for worker {worker} on {queue}")
        return job

    def _forget_future(self, job_id: str) -> None:
        with self._lock:
            self._futures.pop(job_id, None)

    def _execute_job(self, job_id: str) -> None:
        """Execute a job in a pool thread."""
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.status == JobStatus.CANCELLED:
                return
            func = self._workers[job.worker]
            job.status = JobStatus.RUNNING
            job.started_at = datetime.now()

        try:
            result = self.middleware.invoke(
                func, job.descriptor(), job.queue, lambda: func(*job.args)
            )
        except Exception as e:
            logger.error(
                f"Job {job_id} failed: {e}",
                extra={"job_id": job_id, "queue": job.queue},
            )
            with self._lock:
                job.status = JobStatus.FAILED
                job.error = str(e)
                job.completed_at = datetime.now()
            return

        with self._lock:
            job.status = JobStatus.COMPLETED
            job.result = result
            job.completed_at = datetime.now()

    def get_job(self, job_id: str) -> Job | None:
        """Get job by ID."""
        return self._jobs.get(job_id)

    def list_jobs(self, status: JobStatus | None = None, limit: int = 50) -> list[Job]:
        """List jobs, newest first."""
        with self._lock:
            jobs = list(self._jobs.values())

        if status:
            jobs = [j for j in jobs if j.status == status]

        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def cancel(self, job_id: str) -> bool:
        """Cancel a job that has not started yet."""
        with self._lock:
            job = self._jobs.get(job_id)
            if not job or job.status != JobStatus.PENDING:
                return False

            job.status = JobStatus.CANCELLED
            job.completed_at = datetime.now()
            job.error = "Cancelled by user"

        future = self._futures.get(job_id)
        if future:
            future.cancel()

        logger.info(f"Cancelled job {job_id}")
        return True

    def delete_job(self, job_id: str) -> bool:
        """Delete a completed/failed/cancelled job."""
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return False

            if job.status in (JobStatus.PENDING, JobStatus.RUNNING):
                return False

            del self._jobs[job_id]
            self._futures.pop(job_id, None)

        return True

    def cleanup_old_jobs(self, max_age_hours: float = 24) -> int:
        """Remove finished jobs that completed more than max_age_hours ago."""
        cutoff = datetime.now().timestamp() - (max_age_hours * 3600)

        with self._lock:
            to_delete = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)
                and job.completed_at
                and job.completed_at.timestamp() < cutoff
            ]
            for job_id in to_delete:
                del self._jobs[job_id]
                self._futures.pop(job_id, None)

        if to_delete:
            logger.info(f"Cleaned up {len(to_delete)} old jobs")
        return len(to_delete)

    def wait_all(self, timeout: float | None = None) -> None:
        """Block until every submitted job has finished."""
        with self._lock:
            futures = list(self._futures.values())
        wait_for_futures(futures, timeout=timeout)

    def shutdown(self, wait: bool = True):
        """Shutdown the executor."""
        self.executor.shutdown(wait=wait)
        logger.info("Job runner shutdown")

    def get_stats(self) -> dict[str, int]:
        """Get job statistics."""
        stats = {
            "total": len(self._jobs),
            "pending": 0,
            "running": 0,
            "completed": 0,
            "failed": 0,
            "cancelled": 0,
        }
        with self._lock:
            for job in self._jobs.values():
                stats[job.status.value] += 1
        return stats
