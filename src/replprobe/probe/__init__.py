from __future__ import annotations

from replprobe.probe.clock import Clock, SystemClock
from replprobe.probe.runner import (
    ProbeResult,
    ProgressCallback,
    ensure_new_run,
    preflight,
    run_ping,
    run_probe,
    save_result,
    summary_document,
    trial_value,
)
from replprobe.probe.trial import TERMINAL_STATES, TrialRunner, TrialState

__all__ = [
    "Clock",
    "ProbeResult",
    "ProgressCallback",
    "SystemClock",
    "TERMINAL_STATES",
    "TrialRunner",
    "TrialState",
    "ensure_new_run",
    "preflight",
    "run_ping",
    "run_probe",
    "save_result",
    "summary_document",
    "trial_value",
]
