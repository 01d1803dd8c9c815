from __future__ import annotations

import logging
from enum import Enum

from replprobe.backend import KVBackend
from replprobe.config import SecretLocation
from replprobe.errors import BackendError
from replprobe.metrics import Trial, TrialOutcome
from replprobe.probe.clock import Clock

logger = logging.getLogger(__name__)


class TrialState(str, Enum):
    PENDING = "pending"
    WRITING = "writing"
    POLLING = "polling"
    WRITE_FAILED = "write_failed"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"


_TRANSITIONS: dict[TrialState, frozenset[TrialState]] = {
    TrialState.PENDING: frozenset({TrialState.WRITING}),
    TrialState.WRITING: frozenset({TrialState.WRITE_FAILED, TrialState.POLLING}),
    TrialState.POLLING: frozenset({TrialState.MATCHED, TrialState.TIMED_OUT}),
}

TERMINAL_STATES = frozenset({TrialState.WRITE_FAILED, TrialState.MATCHED, TrialState.TIMED_OUT})


class TrialRunner:
    """One write-then-poll cycle.

    The poll sleep is clamped to the time left in the budget, so a trial
    that never sees its value ends at ``max_wait_ms`` rather than up to one
    poll interval later. A value first observed after the deadline does not
    count as a match.
    """

    def __init__(
        self,
        sequence: int,
        value: str,
        location: SecretLocation,
        primary: KVBackend,
        secondary: KVBackend,
        clock: Clock,
        max_wait_ms: float,
        poll_interval_ms: float,
    ) -> None:
        self.sequence = sequence
        self.value = value
        self.location = location
        self.primary = primary
        self.secondary = secondary
        self.clock = clock
        self.max_wait_sec = max_wait_ms / 1000.0
        self.poll_interval_sec = poll_interval_ms / 1000.0
        self.state = TrialState.PENDING
        self.poll_attempts = 0
        self.last_error: str | None = None
        self._start = 0.0
        self._written_at_ms = 0

    def _advance(self, target: TrialState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if target not in allowed:
            msg = f"illegal trial transition {self.state.value} -> {target.value}"
            raise RuntimeError(msg)
        self.state = target

    def _elapsed(self) -> float:
        return self.clock.monotonic() - self._start

    def _finish(self, state: TrialState, latency_sec: float | None = None) -> Trial:
        self._advance(state)
        elapsed_ms = self._elapsed() * 1000.0
        return Trial(
            sequence=self.sequence,
            value=self.value,
            written_at_ms=self._written_at_ms,
            outcome=TrialOutcome(state.value),
            latency_ms=None if latency_sec is None else latency_sec * 1000.0,
            elapsed_ms=elapsed_ms,
            poll_attempts=self.poll_attempts,
            last_error=self.last_error,
        )

    async def run(self) -> Trial:
        self._written_at_ms = int(self.clock.time() * 1000)
        self._start = self.clock.monotonic()
        self._advance(TrialState.WRITING)
        try:
            await self.primary.put(self.location, self.value)
        except BackendError as exc:
            self.last_error = str(exc)
            logger.debug("trial %d write failed: %s", self.sequence, exc)
            return self._finish(TrialState.WRITE_FAILED)

        self._advance(TrialState.POLLING)
        while True:
            matched = await self._poll_once()
            elapsed = self._elapsed()
            if matched:
                if elapsed <= self.max_wait_sec:
                    return self._finish(TrialState.MATCHED, latency_sec=elapsed)
                self.last_error = "value observed after deadline"
                return self._finish(TrialState.TIMED_OUT)
            remaining = self.max_wait_sec - elapsed
            if remaining <= 0:
                return self._finish(TrialState.TIMED_OUT)
            await self.clock.sleep(min(self.poll_interval_sec, remaining))
            if self._elapsed() >= self.max_wait_sec:
                return self._finish(TrialState.TIMED_OUT)

    async def _poll_once(self) -> bool:
        self.poll_attempts += 1
        try:
            observed = await self.secondary.get(self.location)
        except BackendError as exc:
            self.last_error = str(exc)
            return False
        if observed is None:
            self.last_error = "not found"
            return False
        if observed != self.value:
            self.last_error = f"got {observed}"
            return False
        return True
