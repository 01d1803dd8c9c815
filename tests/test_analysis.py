from __future__ import annotations

import pandas as pd

from replprobe.analysis import compare_runs, failure_streaks, latency_spikes


def _frame(rows: list[tuple[str, float | None]]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {"sequence": i, "outcome": outcome, "latency_ms": latency}
            for i, (outcome, latency) in enumerate(rows, start=1)
        ]
    )


def test_no_regression_for_similar_runs() -> None:
    base = _frame([("matched", 100.0), ("matched", 110.0), ("matched", 120.0)])
    cand = _frame([("matched", 105.0), ("matched", 112.0), ("matched", 125.0)])
    assert compare_runs(base, cand) == []


def test_p95_regression_detected() -> None:
    base = _frame([("matched", 100.0), ("matched", 110.0), ("matched", 120.0)])
    cand = _frame([("matched", 100.0), ("matched", 110.0), ("matched", 400.0)])
    regressions = compare_runs(base, cand)
    assert [r.metric for r in regressions] == ["p95_ms"]
    assert regressions[0].delta_pct > 200


def test_new_failures_flagged() -> None:
    base = _frame([("matched", 100.0), ("matched", 100.0)])
    cand = _frame([("matched", 100.0), ("timed_out", None)])
    regressions = compare_runs(base, cand)
    assert [r.metric for r in regressions] == ["failure_rate"]


def test_empty_runs_never_regress() -> None:
    assert compare_runs(pd.DataFrame(), _frame([("matched", 1.0)])) == []


def test_latency_spikes() -> None:
    trials = _frame([("matched", 100.0), ("matched", 110.0), ("matched", 900.0), ("timed_out", None)])
    spikes = latency_spikes(trials)
    assert [(s.start_trial, s.label) for s in spikes] == [(3, "latency_spike")]


def test_failure_streaks() -> None:
    trials = _frame(
        [
            ("matched", 1.0),
            ("timed_out", None),
            ("write_failed", None),
            ("matched", 1.0),
            ("timed_out", None),
            ("timed_out", None),
            ("timed_out", None),
        ]
    )
    streaks = failure_streaks(trials)
    assert [(s.start_trial, s.end_trial) for s in streaks] == [(2, 3), (5, 7)]
