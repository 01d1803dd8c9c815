from __future__ import annotations

import asyncio
import logging
import random
import uuid
from contextlib import AsyncExitStack
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Sequence

from replprobe.backend import KVBackend, VaultKVBackend
from replprobe.config import EndpointConfig, ProbeConfig
from replprobe.errors import BackendError, DuplicateRunError, PreflightError
from replprobe.metrics import RunSummary, Trial, summarize
from replprobe.probe.clock import Clock, SystemClock
from replprobe.probe.trial import TrialRunner
from replprobe.storage import CsvTrialSink, Storage, TrialSink

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Trial, int], Awaitable[None]]
BackendFactory = Callable[[EndpointConfig, ProbeConfig], VaultKVBackend]


@dataclass(frozen=True, slots=True)
class ProbeResult:
    run_id: str
    trials: list[Trial]
    summary: RunSummary
    started_at_ms: int
    warnings: list[str] = field(default_factory=list)


def _new_run_id() -> str:
    return uuid.uuid4().hex


def trial_value(sequence: int, now_ms: int, run_id: str) -> str:
    return f"pong-{sequence}-{now_ms}-{run_id[:8]}"


async def preflight(primary: KVBackend, secondary: KVBackend) -> list[str]:
    """Check both endpoints, raising ``PreflightError`` for the first failure.

    Returns non-fatal warnings about the secondary's replication role.
    """
    for role, backend in (("primary", primary), ("secondary", secondary)):
        try:
            await backend.preflight()
        except BackendError as exc:
            raise PreflightError(role, backend.address, exc) from exc
        logger.debug("%s %s passed preflight", role, backend.address)

    warnings: list[str] = []
    try:
        status = await secondary.replication_status()
    except BackendError as exc:
        logger.debug("could not read replication status: %s", exc)
        status = None
    if status is not None:
        if not status.is_performance_secondary:
            msg = (
                f"Secondary perf mode is '{status.mode}' (expected 'secondary'). "
                "Replication may not work."
            )
            logger.warning(msg)
            warnings.append(msg)
        logger.info("secondary replication state: %s", status.state)
    return warnings


async def run_probe(
    config: ProbeConfig,
    primary: KVBackend,
    secondary: KVBackend,
    *,
    clock: Clock | None = None,
    rng: random.Random | None = None,
    progress: ProgressCallback | None = None,
    sinks: Sequence[TrialSink] = (),
    cancel: asyncio.Event | None = None,
) -> ProbeResult:
    clock = clock or SystemClock()
    rng = rng or random.Random(config.seed)
    run_id = config.run_id or _new_run_id()
    warnings = await preflight(primary, secondary)

    started_mono = clock.monotonic()
    started_at_ms = int(clock.time() * 1000)
    trials: list[Trial] = []
    cancelled = False
    for sequence in range(1, config.iterations + 1):
        if _should_stop(config, clock, started_mono, cancel):
            logger.warning("run %s cancelled after %d trials", run_id, len(trials))
            cancelled = True
            break

        if config.jitter_max_ms > 0:
            jitter_ms = rng.uniform(0.0, config.jitter_max_ms)
            await clock.sleep(jitter_ms / 1000.0)

        value = trial_value(sequence, int(clock.time() * 1000), run_id)
        trial = await TrialRunner(
            sequence=sequence,
            value=value,
            location=config.location,
            primary=primary,
            secondary=secondary,
            clock=clock,
            max_wait_ms=config.max_wait_ms,
            poll_interval_ms=config.poll_interval_ms,
        ).run()
        trials.append(trial)
        for sink in sinks:
            sink.write(trial)
        if progress:
            await progress(trial, config.iterations)
        if not _should_stop(config, clock, started_mono, cancel):
            await clock.sleep(config.inter_trial_delay_sec)

    summary = summarize(trials, config.iterations, cancelled=cancelled)
    return ProbeResult(
        run_id=run_id,
        trials=trials,
        summary=summary,
        started_at_ms=started_at_ms,
        warnings=warnings,
    )


def _should_stop(
    config: ProbeConfig,
    clock: Clock,
    started_mono: float,
    cancel: asyncio.Event | None,
) -> bool:
    if cancel is not None and cancel.is_set():
        return True
    if config.run_timeout_sec is not None:
        return clock.monotonic() - started_mono >= config.run_timeout_sec
    return False


def vault_backend(endpoint: EndpointConfig, config: ProbeConfig) -> VaultKVBackend:
    return VaultKVBackend(endpoint, kv_version=config.kv_version, retry=config.retry)


async def run_ping(
    config: ProbeConfig,
    storage: Storage | None = None,
    progress: ProgressCallback | None = None,
    cancel: asyncio.Event | None = None,
    backend_factory: BackendFactory = vault_backend,
) -> ProbeResult:
    """Run a probe against Vault endpoints, streaming CSV and persisting the run.

    Pass ``storage=None`` and call ``save_result`` afterwards to report the
    summary before anything touches the results store.
    """
    run_id = config.run_id or _new_run_id()
    if storage is not None:
        ensure_new_run(storage, run_id)

    async with AsyncExitStack() as stack:
        primary = await stack.enter_async_context(backend_factory(config.primary, config))
        secondary = await stack.enter_async_context(backend_factory(config.secondary, config))
        sinks: list[TrialSink] = []
        if config.output.csv_path:
            sinks.append(stack.enter_context(CsvTrialSink(config.output.csv_path)))
        result = await run_probe(
            _with_run_id(config, run_id),
            primary,
            secondary,
            progress=progress,
            sinks=sinks,
            cancel=cancel,
        )

    if storage is not None and config.output.persist:
        save_result(storage, config, result)
    return result


def ensure_new_run(storage: Storage, run_id: str) -> None:
    if storage.run_exists(run_id):
        raise DuplicateRunError(run_id)


def save_result(storage: Storage, config: ProbeConfig, result: ProbeResult) -> None:
    storage.save_run(config, result.run_id, result.trials, summary_document(config, result.summary))
    logger.info("saved run %s to %s", result.run_id, storage.db_path)


def _with_run_id(config: ProbeConfig, run_id: str) -> ProbeConfig:
    if config.run_id == run_id:
        return config
    return replace(config, run_id=run_id)


def summary_document(config: ProbeConfig, summary: RunSummary) -> dict[str, object]:
    """JSON summary in the layout the ping-pong tooling has always emitted."""
    document: dict[str, object] = {
        "primary": config.primary.address,
        "secondary": config.secondary.address,
        "namespace": config.location.namespace,
        "mount": config.location.mount,
        "path": config.location.path,
    }
    document.update(summary.to_dict())
    return document
