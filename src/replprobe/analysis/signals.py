from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from replprobe.metrics import TrialOutcome


@dataclass(frozen=True, slots=True)
class SignalWindow:
    start_trial: int
    end_trial: int
    label: str


def latency_spikes(trials: pd.DataFrame, factor: float = 3.0) -> list[SignalWindow]:
    """Matched trials whose latency exceeds ``factor`` times the run median."""
    windows: list[SignalWindow] = []
    if trials.empty:
        return windows
    matched = trials[trials["outcome"] == TrialOutcome.MATCHED.value]
    if matched.empty:
        return windows
    median = float(matched["latency_ms"].median())
    if median <= 0:
        return windows
    for _, row in matched[matched["latency_ms"] > median * factor].iterrows():
        seq = int(row["sequence"])
        windows.append(SignalWindow(seq, seq, "latency_spike"))
    return windows


def failure_streaks(trials: pd.DataFrame, min_length: int = 2) -> list[SignalWindow]:
    """Runs of consecutive non-matched trials at least ``min_length`` long."""
    windows: list[SignalWindow] = []
    if trials.empty:
        return windows
    ordered = trials.sort_values("sequence")
    start: int | None = None
    last = 0
    for _, row in ordered.iterrows():
        seq = int(row["sequence"])
        if row["outcome"] != TrialOutcome.MATCHED.value:
            if start is None:
                start = seq
            last = seq
            continue
        if start is not None and last - start + 1 >= min_length:
            windows.append(SignalWindow(start, last, "failure_streak"))
        start = None
    if start is not None and last - start + 1 >= min_length:
        windows.append(SignalWindow(start, last, "failure_streak"))
    return windows
