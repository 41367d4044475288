"""Per-job sampling decision."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from jobtrace.errors import SamplingError

SampleProc = Callable[[Mapping[str, Any]], Any]


def always_sample(job: Mapping[str, Any]) -> bool:
    return True


def never_sample(job: Mapping[str, Any]) -> bool:
    return False


class SamplingGate:
    """Decides, once per job and before any span exists, whether to trace it.

    The predicate sees the whole job descriptor and should be free of side
    effects.

    ``should_sample`` raises only ``SamplingError``: any ``Exception`` from
    the predicate is re-raised as ``SamplingError``, with the predicate's own
    exception available as ``.cause`` and ``__cause__``. Callers catching the
    predicate's exception type must catch ``SamplingError`` instead.
    """

    def __init__(self, sample_proc: SampleProc | None = None):
        self.sample_proc = sample_proc or always_sample

    def should_sample(self, job: Mapping[str, Any]) -> bool:
        try:
            return bool(self.sample_proc(job))
        except Exception as e:
            raise SamplingError(
                f"Sampling predicate failed for job {job.get('jid', '<unknown>')}: {e}",
                cause=e,
            ) from e
