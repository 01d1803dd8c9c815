from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping

from replprobe.config.models import (
    EndpointConfig,
    KVVersion,
    OutputConfig,
    ProbeConfig,
    RetryConfig,
    SecretLocation,
)
from replprobe.errors import ConfigError

DEFAULT_MAX_WAIT_MS = 5000.0
DEFAULT_POLL_INTERVAL_MS = 50.0
DEFAULT_JITTER_MAX_MS = 50.0
DEFAULT_SLEEP_SECONDS = 1.0


def load_config_file(path: str | Path) -> dict[str, Any]:
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file {path}: {exc}"
        raise ConfigError(msg) from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"Config file {path} is not valid JSON: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"Config file {path} must contain a JSON object"
        raise ConfigError(msg)
    return data


def config_from_mapping(
    data: Mapping[str, Any],
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProbeConfig:
    """Build a ProbeConfig from the ping-pong JSON layout.

    ``overrides`` holds flat keys using the same names as the file
    (``iterations``, ``max_wait_ms`` ...); ``None`` values are ignored.
    Endpoint tokens fall back to ``VAULT_TOKEN`` from ``environ``.
    """
    env = os.environ if environ is None else environ
    merged: dict[str, Any] = dict(data)
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value

    primary = _endpoint(merged, "primary", env)
    secondary = _endpoint(merged, "secondary", env)
    location = SecretLocation(
        namespace=str(merged.get("namespace") or ""),
        mount=_required_str(merged, "mount"),
        path=_required_str(merged, "secret_path"),
    )
    retry_raw = _section(merged, "retry")
    retry = RetryConfig(
        enabled=_as_bool(retry_raw.get("enabled", False)),
        max_retries=_as_int(retry_raw, "max_retries", 2, section="retry"),
        base_delay_sec=_as_float(retry_raw, "base_delay_sec", 0.2, section="retry"),
        max_delay_sec=_as_float(retry_raw, "max_delay_sec", 2.0, section="retry"),
    )
    output = OutputConfig(
        json_summary=_as_bool(merged.get("json_summary", False)),
        csv_path=merged.get("csv_out") or None,
        persist=_as_bool(merged.get("persist", True)),
    )
    try:
        kv_version = KVVersion(int(merged.get("kv_version", 2)))
    except (TypeError, ValueError) as exc:
        msg = f"Unsupported kv_version: {merged.get('kv_version')}"
        raise ConfigError(msg) from exc
    return ProbeConfig(
        primary=primary,
        secondary=secondary,
        location=location,
        iterations=_as_int(merged, "iterations"),
        inter_trial_delay_sec=_as_float(merged, "sleep_seconds", DEFAULT_SLEEP_SECONDS),
        max_wait_ms=_as_float(merged, "max_wait_ms", DEFAULT_MAX_WAIT_MS),
        poll_interval_ms=_as_float(merged, "poll_interval_ms", DEFAULT_POLL_INTERVAL_MS),
        jitter_max_ms=_as_float(merged, "jitter_max_ms", DEFAULT_JITTER_MAX_MS),
        kv_version=kv_version,
        seed=_optional_int(merged, "seed"),
        run_timeout_sec=_optional_float(merged, "run_timeout_sec"),
        retry=retry,
        output=output,
        run_id=str(merged["run_id"]) if merged.get("run_id") else None,
        notes=str(merged.get("notes") or ""),
    )


def load_config(
    path: str | Path,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProbeConfig:
    return config_from_mapping(load_config_file(path), overrides, environ)


def _endpoint(data: Mapping[str, Any], role: str, env: Mapping[str, str]) -> EndpointConfig:
    raw = data.get(role)
    if not isinstance(raw, Mapping):
        msg = f"'{role}' section is required"
        raise ConfigError(msg)
    address = str(raw.get("addr") or "").rstrip("/")
    if not address:
        msg = f"'{role}.addr' is required"
        raise ConfigError(msg)
    token = str(raw.get("token") or env.get("VAULT_TOKEN", ""))
    return EndpointConfig(
        address=address,
        token=token,
        timeout_sec=_as_float(raw, "timeout_sec", 10.0, section=role),
        verify=_as_bool(raw.get("verify", True)),
    )


def _required_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None or str(value).strip() == "":
        msg = f"'{key}' is required"
        raise ConfigError(msg)
    return str(value)


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        msg = f"'{key}' must be an object, got {value!r}"
        raise ConfigError(msg)
    return value


def _label(key: str, section: str) -> str:
    return f"{section}.{key}" if section else key


def _as_int(
    data: Mapping[str, Any],
    key: str,
    default: int | None = None,
    section: str = "",
) -> int:
    value = data.get(key, default)
    if value is None:
        msg = f"'{_label(key, section)}' is required"
        raise ConfigError(msg)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        msg = f"'{_label(key, section)}' must be an integer, got {value!r}"
        raise ConfigError(msg) from exc


def _optional_int(data: Mapping[str, Any], key: str) -> int | None:
    if data.get(key) is None:
        return None
    return _as_int(data, key)


def _as_float(
    data: Mapping[str, Any],
    key: str,
    default: float,
    section: str = "",
) -> float:
    value = data.get(key, default)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        msg = f"'{_label(key, section)}' must be a number, got {value!r}"
        raise ConfigError(msg) from exc


def _optional_float(data: Mapping[str, Any], key: str) -> float | None:
    if data.get(key) is None:
        return None
    return _as_float(data, key, 0.0)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)
