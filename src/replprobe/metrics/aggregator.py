from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Iterable, Sequence

import numpy as np

from replprobe.metrics.models import LatencyStats, RunSummary, Trial, TrialOutcome


def percentile_index(p: int, n: int) -> int:
    """Nearest-rank index ``floor((p*(n-1)+50)/100)`` clamped to ``[0, n-1]``."""
    if n <= 0:
        msg = "percentile of an empty series"
        raise ValueError(msg)
    idx = (p * (n - 1) + 50) // 100
    return max(0, min(n - 1, idx))


def percentile(latencies: Sequence[float], p: int) -> float | None:
    if not latencies:
        return None
    ordered = np.sort(np.asarray(latencies, dtype=float))
    return float(ordered[percentile_index(p, ordered.size)])


@dataclass(frozen=True, slots=True)
class _Accumulator:
    trials_run: int = 0
    latencies: tuple[float, ...] = ()
    timed_out: int = 0
    write_failed: int = 0

    def add(self, trial: Trial) -> _Accumulator:
        latencies = self.latencies
        timed_out = self.timed_out
        write_failed = self.write_failed
        if trial.outcome is TrialOutcome.MATCHED:
            latencies = latencies + (float(trial.latency_ms or 0.0),)
        elif trial.outcome is TrialOutcome.TIMED_OUT:
            timed_out += 1
        elif trial.outcome is TrialOutcome.WRITE_FAILED:
            write_failed += 1
        return _Accumulator(self.trials_run + 1, latencies, timed_out, write_failed)


def latency_stats(latencies: Sequence[float]) -> LatencyStats:
    if not latencies:
        return LatencyStats()
    values = np.asarray(latencies, dtype=float)
    return LatencyStats(
        min_ms=float(values.min()),
        max_ms=float(values.max()),
        mean_ms=float(values.sum() / values.size),
        p50_ms=percentile(latencies, 50),
        p95_ms=percentile(latencies, 95),
    )


def summarize(trials: Iterable[Trial], iterations: int, cancelled: bool = False) -> RunSummary:
    acc = reduce(lambda a, t: a.add(t), trials, _Accumulator())
    success = len(acc.latencies)
    not_run = max(0, iterations - acc.trials_run)
    return RunSummary(
        iterations=iterations,
        success_count=success,
        fail_count=iterations - success,
        latency=latency_stats(acc.latencies),
        outcomes={
            TrialOutcome.MATCHED.value: success,
            TrialOutcome.TIMED_OUT.value: acc.timed_out,
            TrialOutcome.WRITE_FAILED.value: acc.write_failed,
            "not_run": not_run,
        },
        trials_run=acc.trials_run,
        cancelled=cancelled,
    )
