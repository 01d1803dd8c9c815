from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from replprobe.backend import ReplicationStatus
from replprobe.config import EndpointConfig, ProbeConfig, SecretLocation
from replprobe.errors import BackendError


@dataclass
class FakeClock:
    now: float = 0.0
    wall_start: float = 1_700_000_000.0
    sleeps: list[float] = field(default_factory=list)

    def monotonic(self) -> float:
        return self.now

    def time(self) -> float:
        return self.wall_start + self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self.now += seconds


class FakePrimary:
    def __init__(self, address: str = "http://primary:8200") -> None:
        self.address = address
        self.values: dict[str, str] = {}
        self.written: list[str] = []
        self.fail_puts: set[int] = set()
        self.preflight_error: BackendError | None = None
        self.put_calls = 0

    async def __aenter__(self) -> FakePrimary:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def preflight(self) -> None:
        if self.preflight_error is not None:
            raise self.preflight_error

    async def put(self, location: SecretLocation, value: str) -> None:
        self.put_calls += 1
        if self.put_calls in self.fail_puts:
            raise BackendError("permission denied", status_code=403)
        self.values[location.display()] = value
        self.written.append(value)

    async def get(self, location: SecretLocation) -> str | None:
        return self.values.get(location.display())

    async def replication_status(self) -> ReplicationStatus | None:
        return ReplicationStatus(mode="primary", state="running")


class LaggingReplica:
    """Serves the primary's value only after ``lag_reads`` stale reads."""

    def __init__(
        self,
        primary: FakePrimary,
        lag_reads: int = 0,
        address: str = "http://secondary:8200",
    ) -> None:
        self.address = address
        self.primary = primary
        self.lag_reads = lag_reads
        self.preflight_error: BackendError | None = None
        self.read_error: BackendError | None = None
        self.status: ReplicationStatus | None = ReplicationStatus(mode="secondary", state="stream-wals")
        self.reads = 0
        self._tracking: str | None = None
        self._visible: str | None = None
        self._stale_reads = 0

    async def __aenter__(self) -> LaggingReplica:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def preflight(self) -> None:
        if self.preflight_error is not None:
            raise self.preflight_error

    async def put(self, location: SecretLocation, value: str) -> None:
        raise BackendError("secondary is read-only", status_code=400)

    async def get(self, location: SecretLocation) -> str | None:
        self.reads += 1
        if self.read_error is not None:
            raise self.read_error
        current = self.primary.values.get(location.display())
        if current != self._tracking:
            self._tracking = current
            self._stale_reads = 0
        if self._stale_reads >= self.lag_reads:
            self._visible = current
            return current
        self._stale_reads += 1
        return self._visible

    async def replication_status(self) -> ReplicationStatus | None:
        return self.status


def make_config(**kwargs: object) -> ProbeConfig:
    params: dict[str, object] = {
        "primary": EndpointConfig(address="http://primary:8200", token="p-token"),
        "secondary": EndpointConfig(address="http://secondary:8200", token="s-token"),
        "location": SecretLocation(namespace="admin", mount="kv", path="pingpong"),
        "iterations": 5,
        "inter_trial_delay_sec": 0.0,
        "max_wait_ms": 5000.0,
        "poll_interval_ms": 100.0,
        "jitter_max_ms": 0.0,
        "seed": 1,
    }
    params.update(kwargs)
    return ProbeConfig(**params)  # type: ignore[arg-type]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def primary() -> FakePrimary:
    return FakePrimary()
