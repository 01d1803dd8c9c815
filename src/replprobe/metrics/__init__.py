from __future__ import annotations

from replprobe.metrics.aggregator import latency_stats, percentile, percentile_index, summarize
from replprobe.metrics.models import CSV_HEADER, LatencyStats, RunSummary, Trial, TrialOutcome

__all__ = [
    "CSV_HEADER",
    "LatencyStats",
    "RunSummary",
    "Trial",
    "TrialOutcome",
    "latency_stats",
    "percentile",
    "percentile_index",
    "summarize",
]
