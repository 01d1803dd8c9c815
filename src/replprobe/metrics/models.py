from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class TrialOutcome(str, Enum):
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    WRITE_FAILED = "write_failed"


@dataclass(frozen=True, slots=True)
class Trial:
    sequence: int
    value: str
    written_at_ms: int
    outcome: TrialOutcome
    latency_ms: float | None = None
    elapsed_ms: float = 0.0
    poll_attempts: int = 0
    last_error: str | None = None

    @property
    def matched(self) -> bool:
        return self.outcome is TrialOutcome.MATCHED

    def csv_row(self) -> list[str]:
        latency = "" if self.latency_ms is None else _format_ms(self.latency_ms)
        return [
            str(self.sequence),
            latency,
            str(self.written_at_ms),
            "yes" if self.matched else "no",
        ]


CSV_HEADER = ["iteration", "latency_ms", "timestamp_ms", "matched"]


@dataclass(frozen=True, slots=True)
class LatencyStats:
    min_ms: float = 0.0
    max_ms: float = 0.0
    mean_ms: float = 0.0
    p50_ms: float | None = None
    p95_ms: float | None = None

    @property
    def available(self) -> bool:
        return self.p50_ms is not None


@dataclass(frozen=True, slots=True)
class RunSummary:
    iterations: int
    success_count: int
    fail_count: int
    latency: LatencyStats
    outcomes: Mapping[str, int] = field(default_factory=dict)
    trials_run: int = 0
    cancelled: bool = False

    @property
    def all_matched(self) -> bool:
        return self.fail_count == 0 and not self.cancelled

    def to_dict(self) -> dict[str, Any]:
        return {
            "iterations": self.iterations,
            "success": self.success_count,
            "fail": self.fail_count,
            "trials_run": self.trials_run,
            "cancelled": self.cancelled,
            "outcomes": dict(self.outcomes),
            "lat_ms": {
                "min": self.latency.min_ms,
                "max": self.latency.max_ms,
                "avg": self.latency.mean_ms,
                "p50": self.latency.p50_ms,
                "p95": self.latency.p95_ms,
            },
        }


def _format_ms(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}"
