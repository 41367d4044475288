"""Simulate command: run synthetic jobs through the tracing interceptor."""

from __future__ import annotations

import typer
from rich.table import Table

from jobtrace.config import TracingSettings
from jobtrace.jobs import JobRunner, JobStatus, JobTracingInterceptor
from jobtrace.tracing import InMemoryExporter, span_context

from ..helpers import console, render_span_tree

SYNTHETIC_WORKER = "SyntheticJob"


def _nested_work(depth: int) -> int:
    """Open ``depth`` nested spans, one inside the other."""
    if depth == 0:
        return 0
    with span_context(f"step-{depth}") as span:
        if span:
            span.set_attribute("depth", depth)
        return 1 + _nested_work(depth - 1)


def simulate(
    jobs: int = typer.Option(5, "--jobs", "-n", min=1, help="Number of jobs to enqueue"),
    depth: int = typer.Option(3, "--depth", "-d", min=0, help="Nested spans per job"),
    max_frames: int = typer.Option(10, "--max-frames", "-f", min=1, help="Export span bound"),
    fail_every: int = typer.Option(
        0, "--fail-every", help="Make every Nth job raise (0 = never)", min=0
    ),
    queue: str = typer.Option("default", "--queue", "-q", help="Queue name"),
    workers: int = typer.Option(4, "--workers", "-w", min=1, help="Worker threads"),
    show: int = typer.Option(3, "--show", help="Number of exported trees to print", min=0),
):
    """Run synthetic jobs with tracing and print the exported span trees."""
    settings = TracingSettings(
        trace_prefix="jobs",
        job_attrs_for_trace_name=["queue", "class"],
        job_attrs_for_span=["jid", "queue"],
        default_max_stack_frames=max_frames,
    )
    exporter = InMemoryExporter()
    interceptor = JobTracingInterceptor(exporter=exporter, settings=settings)

    runner = JobRunner(max_workers=workers)
    runner.middleware.add(interceptor)

    def synthetic_job(index: int) -> int:
        if fail_every and index % fail_every == 0:
            raise RuntimeError(f"synthetic failure in job {index}")
        return _nested_work(depth)

    runner.register(SYNTHETIC_WORKER, synthetic_job)

    try:
        for index in range(1, jobs + 1):
            runner.enqueue(SYNTHETIC_WORKER, index, queue=queue)
        runner.wait_all()
    finally:
        runner.shutdown()

    for tree in exporter.trees[:show]:
        console.print(render_span_tree(tree))

    job_stats = runner.get_stats()
    trace_stats = interceptor.get_stats()

    table = Table(title="Simulation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("jobs completed", str(job_stats[JobStatus.COMPLETED.value]))
    table.add_row("jobs failed", str(job_stats[JobStatus.FAILED.value]))
    for key in ("sampled", "bypassed", "job_errors", "exported", "export_errors"):
        table.add_row(key, str(trace_stats[key]))
    table.add_row("trees captured", str(len(exporter.trees)))
    console.print(table)
