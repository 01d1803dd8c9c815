from __future__ import annotations

from replprobe.analysis.compare import Regression, compare_runs
from replprobe.analysis.signals import SignalWindow, failure_streaks, latency_spikes

__all__ = [
    "Regression",
    "SignalWindow",
    "compare_runs",
    "failure_streaks",
    "latency_spikes",
]
