from __future__ import annotations

import asyncio

import pytest

from conftest import FakeClock, FakePrimary, LaggingReplica
from replprobe.config import SecretLocation
from replprobe.errors import BackendError
from replprobe.metrics import TrialOutcome
from replprobe.probe import TrialRunner, TrialState

LOCATION = SecretLocation(namespace="admin", mount="kv", path="pingpong")


def _runner(
    primary: FakePrimary,
    secondary: LaggingReplica,
    clock: FakeClock,
    max_wait_ms: float = 1000.0,
    poll_interval_ms: float = 100.0,
) -> TrialRunner:
    return TrialRunner(
        sequence=1,
        value="pong-1",
        location=LOCATION,
        primary=primary,
        secondary=secondary,
        clock=clock,
        max_wait_ms=max_wait_ms,
        poll_interval_ms=poll_interval_ms,
    )


def test_immediate_match(primary: FakePrimary, clock: FakeClock) -> None:
    runner = _runner(primary, LaggingReplica(primary), clock)
    trial = asyncio.run(runner.run())
    assert trial.outcome is TrialOutcome.MATCHED
    assert trial.latency_ms == 0.0
    assert trial.poll_attempts == 1
    assert runner.state is TrialState.MATCHED


def test_write_failure_skips_polling(primary: FakePrimary, clock: FakeClock) -> None:
    primary.fail_puts = {1}
    secondary = LaggingReplica(primary)
    runner = _runner(primary, secondary, clock)
    trial = asyncio.run(runner.run())
    assert trial.outcome is TrialOutcome.WRITE_FAILED
    assert trial.latency_ms is None
    assert trial.poll_attempts == 0
    assert secondary.reads == 0
    assert "permission denied" in (trial.last_error or "")
    assert runner.state is TrialState.WRITE_FAILED


def test_read_errors_are_retried_until_deadline(primary: FakePrimary, clock: FakeClock) -> None:
    secondary = LaggingReplica(primary)
    secondary.read_error = BackendError("connection refused")
    runner = _runner(primary, secondary, clock, max_wait_ms=375.0, poll_interval_ms=125.0)
    trial = asyncio.run(runner.run())
    assert trial.outcome is TrialOutcome.TIMED_OUT
    assert trial.poll_attempts == 3
    assert trial.elapsed_ms == 375.0
    assert trial.last_error == "connection refused"


def test_mismatch_is_reported(primary: FakePrimary, clock: FakeClock) -> None:
    secondary = LaggingReplica(primary)
    primary.values[LOCATION.display()] = "pong-0"
    asyncio.run(secondary.get(LOCATION))
    secondary.lag_reads = 1000
    trial = asyncio.run(_runner(primary, secondary, clock, max_wait_ms=200.0).run())
    assert trial.outcome is TrialOutcome.TIMED_OUT
    assert trial.last_error == "got pong-0"


def test_poll_sleep_is_clamped_to_deadline(primary: FakePrimary, clock: FakeClock) -> None:
    secondary = LaggingReplica(primary, lag_reads=1000)
    trial = asyncio.run(_runner(primary, secondary, clock, max_wait_ms=250.0).run())
    assert trial.outcome is TrialOutcome.TIMED_OUT
    assert clock.sleeps == [0.1, 0.1, pytest.approx(0.05)]
    assert trial.elapsed_ms == pytest.approx(250.0)


def test_trial_cannot_be_rerun(primary: FakePrimary, clock: FakeClock) -> None:
    runner = _runner(primary, LaggingReplica(primary), clock)
    asyncio.run(runner.run())
    with pytest.raises(RuntimeError):
        asyncio.run(runner.run())
