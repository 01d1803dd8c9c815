from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from replprobe.metrics import TrialOutcome, percentile


@dataclass(frozen=True, slots=True)
class Regression:
    metric: str
    delta_pct: float
    message: str


def _matched_latencies(trials: pd.DataFrame) -> list[float]:
    matched = trials[trials["outcome"] == TrialOutcome.MATCHED.value]
    return [float(v) for v in matched["latency_ms"].dropna()]


def _failure_rate(trials: pd.DataFrame) -> float:
    if trials.empty:
        return 0.0
    failed = (trials["outcome"] != TrialOutcome.MATCHED.value).sum()
    return float(failed) / len(trials)


def compare_runs(base: pd.DataFrame, candidate: pd.DataFrame) -> list[Regression]:
    regressions: list[Regression] = []
    if base.empty or candidate.empty:
        return regressions
    base_p95 = percentile(_matched_latencies(base), 95)
    cand_p95 = percentile(_matched_latencies(candidate), 95)
    if base_p95 and cand_p95 is not None:
        delta = (cand_p95 - base_p95) / base_p95
        if delta > 0.2:
            regressions.append(
                Regression(
                    metric="p95_ms",
                    delta_pct=delta * 100,
                    message="p95 replication latency increased materially",
                )
            )
    base_fail = _failure_rate(base)
    cand_fail = _failure_rate(candidate)
    if base_fail > 0:
        delta = (cand_fail - base_fail) / base_fail
        if delta > 0.3:
            regressions.append(
                Regression(
                    metric="failure_rate",
                    delta_pct=delta * 100,
                    message="failure rate regression detected",
                )
            )
    elif cand_fail > 0:
        regressions.append(
            Regression(
                metric="failure_rate",
                delta_pct=cand_fail * 100,
                message="failures appeared where the baseline had none",
            )
        )
    return regressions
