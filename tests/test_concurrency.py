"""Concurrent job tracing: one export per sampled job, no cross-job spans."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from jobtrace.jobs.interceptor import JobTracingInterceptor
from jobtrace.tracing.context import get_current_trace, span_context


def _job(index: int) -> dict:
    return {"jid": f"{index:024x}", "class": "MailerJob", "queue": "default"}


class TestThreadedJobs:
    """Jobs on a thread pool each get their own trace."""

    def test_thousand_jobs(self, exporter, settings):
        """Export count equals sampled count and spans never cross jobs."""
        settings.sample_proc = lambda job: int(job["jid"], 16) % 3 != 0
        interceptor = JobTracingInterceptor(exporter=exporter, settings=settings)

        def work(index):
            job = _job(index)

            def handler():
                trace = get_current_trace()
                with span_context(f"work-{index}") as span:
                    if span:
                        span.set_attribute("index", index)
                return trace.trace_id if trace else None

            return interceptor.handle(job, handler)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(work, range(1000)))

        sampled = [i for i in range(1000) if i % 3 != 0]
        assert len(exporter.trees) == len(sampled)
        assert interceptor.get_stats()["sampled"] == len(sampled)
        assert interceptor.get_stats()["bypassed"] == 1000 - len(sampled)

        by_jid = {tree.root.attributes["jid"]: tree for tree in exporter.trees}
        assert len(by_jid) == len(sampled)
        for index in sampled:
            tree = by_jid[f"{index:024x}"]
            assert tree.trace_id == results[index]
            assert [c.name for c in tree.root.children] == [f"work-{index}"]
            assert tree.root.children[0].attributes["index"] == index
        assert all(results[i] is None for i in range(1000) if i % 3 == 0)

    def test_failures_under_load(self, exporter, settings):
        """Failing jobs are exported exactly once each."""
        interceptor = JobTracingInterceptor(exporter=exporter, settings=settings)

        def work(index):
            def handler():
                if index % 2:
                    raise RuntimeError(f"job {index}")
                return index

            try:
                return interceptor.handle(_job(index), handler)
            except RuntimeError:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(work, range(200)))

        statuses = [tree.root.status for tree in exporter.trees]
        assert len(statuses) == 200
        assert statuses.count("error") == 100
        assert interceptor.get_stats()["job_errors"] == 100


class TestAsyncJobs:
    """Interleaved coroutine jobs each get their own trace."""

    @pytest.mark.asyncio
    async def test_gathered_jobs(self, exporter, settings):
        interceptor = JobTracingInterceptor(exporter=exporter, settings=settings)

        async def run(index):
            async def handler():
                await asyncio.sleep(0)
                with span_context(f"step-{index}"):
                    await asyncio.sleep(0)
                return get_current_trace().trace_id

            return await interceptor.handle_async(_job(index), handler)

        trace_ids = await asyncio.gather(*(run(i) for i in range(100)))

        assert len(exporter.trees) == 100
        assert len(set(trace_ids)) == 100
        for tree in exporter.trees:
            index = int(tree.root.attributes["jid"], 16)
            assert [c.name for c in tree.root.children] == [f"step-{index}"]
