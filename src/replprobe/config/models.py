from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from replprobe.errors import ConfigError


class KVVersion(int, Enum):
    V1 = 1
    V2 = 2


@dataclass(frozen=True, slots=True)
class EndpointConfig:
    address: str
    token: str = ""
    timeout_sec: float = 10.0
    verify: bool = True

    def to_metadata(self) -> Mapping[str, Any]:
        # tokens are never persisted
        return {
            "address": self.address,
            "timeout_sec": self.timeout_sec,
            "verify": self.verify,
        }


@dataclass(frozen=True, slots=True)
class SecretLocation:
    namespace: str
    mount: str
    path: str

    def display(self) -> str:
        return f"{self.mount.strip('/')}/{self.path.strip('/')}"


@dataclass(frozen=True, slots=True)
class RetryConfig:
    enabled: bool = False
    max_retries: int = 2
    base_delay_sec: float = 0.2
    max_delay_sec: float = 2.0


@dataclass(frozen=True, slots=True)
class OutputConfig:
    json_summary: bool = False
    csv_path: str | None = None
    persist: bool = True


@dataclass(frozen=True, slots=True)
class ProbeConfig:
    primary: EndpointConfig
    secondary: EndpointConfig
    location: SecretLocation
    iterations: int
    inter_trial_delay_sec: float = 1.0
    max_wait_ms: float = 5000.0
    poll_interval_ms: float = 50.0
    jitter_max_ms: float = 50.0
    kv_version: KVVersion = KVVersion.V2
    seed: int | None = None
    run_timeout_sec: float | None = None
    retry: RetryConfig = field(default_factory=RetryConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    run_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    notes: str = ""

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not self.primary.address:
            raise ConfigError("primary address is required")
        if not self.secondary.address:
            raise ConfigError("secondary address is required")
        if not self.location.mount or not self.location.path:
            raise ConfigError("mount and secret path are required")
        if self.iterations <= 0:
            raise ConfigError(f"iterations must be positive, got {self.iterations}")
        if self.inter_trial_delay_sec < 0:
            raise ConfigError("inter-trial delay must be non-negative")
        if self.max_wait_ms <= 0:
            raise ConfigError("max wait must be positive")
        if self.poll_interval_ms <= 0:
            raise ConfigError("poll interval must be positive")
        if self.jitter_max_ms < 0:
            raise ConfigError("jitter bound must be non-negative")
        if self.run_timeout_sec is not None and self.run_timeout_sec <= 0:
            raise ConfigError("run timeout must be positive when set")

    def to_metadata(self) -> Mapping[str, Any]:
        return {
            "run_id": self.run_id or "",
            "created_at": self.created_at.isoformat(),
            "primary": dict(self.primary.to_metadata()),
            "secondary": dict(self.secondary.to_metadata()),
            "namespace": self.location.namespace,
            "mount": self.location.mount,
            "path": self.location.path,
            "iterations": self.iterations,
            "inter_trial_delay_sec": self.inter_trial_delay_sec,
            "max_wait_ms": self.max_wait_ms,
            "poll_interval_ms": self.poll_interval_ms,
            "jitter_max_ms": self.jitter_max_ms,
            "kv_version": self.kv_version.value,
            "seed": self.seed,
            "run_timeout_sec": self.run_timeout_sec,
            "notes": self.notes,
            "retry": {
                "enabled": self.retry.enabled,
                "max_retries": self.retry.max_retries,
                "base_delay_sec": self.retry.base_delay_sec,
                "max_delay_sec": self.retry.max_delay_sec,
            },
            "output": {
                "json_summary": self.output.json_summary,
                "csv_path": self.output.csv_path,
                "persist": self.output.persist,
            },
        }
