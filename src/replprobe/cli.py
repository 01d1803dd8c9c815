from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Sequence

from replprobe.analysis import compare_runs
from replprobe.approval import ControlGroupClient, unwrap_with_retries
from replprobe.backend import VaultHTTP
from replprobe.config import EndpointConfig, ProbeConfig, load_config
from replprobe.errors import (
    ApprovalTimeoutError,
    BackendError,
    ConfigError,
    DuplicateRunError,
    PreflightError,
    StorageError,
)
from replprobe.metrics import RunSummary, Trial, TrialOutcome
from replprobe.probe import ProbeResult, ensure_new_run, run_ping, save_result, summary_document
from replprobe.storage import Storage, default_storage

EXIT_OK = 0
EXIT_TRIAL_FAILURES = 1
EXIT_CONFIG = 2
EXIT_PREFLIGHT = 3

logger = logging.getLogger(__name__)


def _format_ms(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:.0f}"


async def _print_progress(trial: Trial, total: int) -> None:
    prefix = f"[{trial.sequence}/{total}]"
    if trial.outcome is TrialOutcome.MATCHED:
        print(f"{prefix} ✅ replicated in {_format_ms(trial.latency_ms)} ms", flush=True)
    elif trial.outcome is TrialOutcome.WRITE_FAILED:
        print(f"{prefix} ❌ write failed on primary: {trial.last_error}", flush=True)
    else:
        detail = trial.last_error or "no match"
        print(
            f"{prefix} ❌ timeout after {_format_ms(trial.elapsed_ms)} ms "
            f"(expected {trial.value}; {detail})",
            flush=True,
        )


def _print_header(config: ProbeConfig) -> None:
    print("🏓 Performance Replication Ping-Pong")
    print(f"Primary:   {config.primary.address}")
    print(f"Secondary: {config.secondary.address}")
    print(f"Namespace: {config.location.namespace}")
    print(f"Path:      {config.location.display()}")
    print(f"Iterations: {config.iterations}")
    print(f"Max wait:  {config.max_wait_ms:.0f}ms, poll every {config.poll_interval_ms:.0f}ms")
    print()


def _print_summary(config: ProbeConfig, summary: RunSummary) -> None:
    lat = summary.latency
    print()
    print("Summary:")
    print(f"  Successes: {summary.success_count}")
    print(f"  Failures:  {summary.fail_count}")
    if summary.cancelled:
        print(f"  Cancelled after {summary.trials_run} of {summary.iterations} trials")
    print(f"  Min latency: {_format_ms(lat.min_ms)} ms")
    print(f"  Max latency: {_format_ms(lat.max_ms)} ms")
    print(f"  Avg latency: {_format_ms(lat.mean_ms)} ms")
    print(f"  p50 latency: {_format_ms(lat.p50_ms)} ms")
    print(f"  p95 latency: {_format_ms(lat.p95_ms)} ms")
    if config.output.csv_path:
        print(f"  CSV saved: {config.output.csv_path}")
    print()
    print(f"📊 Scoreboard: {summary.success_count} – {summary.fail_count}")
    if summary.all_matched:
        print("🎾 Game, set, and match, replication held serve! 🏆")
    else:
        print("🎾 Match interrupted, replication double faulted!")


async def _run_with_signals(config: ProbeConfig) -> ProbeResult:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = True
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except NotImplementedError:
        installed = False
        logger.debug("signal handlers unsupported; Ctrl-C will abort immediately")
    try:
        return await run_ping(config, progress=_print_progress, cancel=cancel)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _ping_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "iterations": args.iterations,
        "sleep_seconds": args.sleep_seconds,
        "max_wait_ms": args.max_wait_ms,
        "poll_interval_ms": args.poll_interval_ms,
        "jitter_max_ms": args.jitter_max_ms,
        "csv_out": args.csv_out,
        "json_summary": True if args.json_summary else None,
        "seed": args.seed,
        "run_timeout_sec": args.run_timeout,
        "persist": False if args.no_store else None,
        "notes": args.notes,
    }


def _cmd_ping(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config, overrides=_ping_overrides(args))
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    storage = _storage(args) if config.output.persist else None
    if storage is not None and config.run_id:
        try:
            ensure_new_run(storage, config.run_id)
        except DuplicateRunError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return EXIT_CONFIG

    _print_header(config)
    try:
        result = asyncio.run(_run_with_signals(config))
    except PreflightError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return EXIT_PREFLIGHT

    _print_summary(config, result.summary)
    if config.output.json_summary:
        print(json.dumps(summary_document(config, result.summary), indent=2))
    if storage is not None:
        try:
            save_result(storage, config, result)
        except StorageError as exc:
            print(f"❌ run {result.run_id} not saved: {exc}", file=sys.stderr)
            return EXIT_CONFIG
    if result.summary.all_matched:
        return EXIT_OK
    return EXIT_TRIAL_FAILURES


def _cmd_runs(args: argparse.Namespace) -> int:
    runs = _storage(args).list_runs()
    if runs.empty:
        print("No runs stored.")
        return EXIT_OK
    for row in runs.itertuples(index=False):
        print(f"{row.run_id}  {row.created_at}  {row.notes}")
    return EXIT_OK


def _cmd_compare(args: argparse.Namespace) -> int:
    storage = _storage(args)
    for run_id in (args.base, args.candidate):
        if not storage.run_exists(run_id):
            print(f"Error: run {run_id} not found", file=sys.stderr)
            return EXIT_CONFIG
    regressions = compare_runs(storage.load_trials(args.base), storage.load_trials(args.candidate))
    if not regressions:
        print("No regressions detected")
        return EXIT_OK
    for reg in regressions:
        print(f"{reg.message} ({reg.delta_pct:.1f}% on {reg.metric})")
    return EXIT_TRIAL_FAILURES


async def _approve_wait(args: argparse.Namespace) -> dict[str, Any] | None:
    endpoint = EndpointConfig(address=args.addr.rstrip("/"), token=args.token)
    async with VaultHTTP(endpoint) as approver:
        groups = ControlGroupClient(approver, namespace=args.namespace)
        if args.authorize:
            await groups.authorize(args.accessor)
        await groups.wait_for_approval(args.accessor, attempts=args.attempts, interval_sec=args.interval)
        if not args.wrap_token:
            return None
        async with approver.with_token(args.requester_token or args.token) as requester:
            return await unwrap_with_retries(requester, args.wrap_token, namespace=args.namespace)


def _cmd_approve_wait(args: argparse.Namespace) -> int:
    if not args.addr or not args.token:
        print("Error: --addr and --token (or VAULT_ADDR/VAULT_TOKEN) are required", file=sys.stderr)
        return EXIT_CONFIG
    try:
        data = asyncio.run(_approve_wait(args))
    except (ApprovalTimeoutError, BackendError) as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return EXIT_TRIAL_FAILURES
    print(f"✅ request {args.accessor} approved")
    if data is not None:
        print(json.dumps(data, indent=2))
    return EXIT_OK


def _storage(args: argparse.Namespace) -> Storage:
    if args.db:
        return Storage(Path(args.db))
    return default_storage()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Vault replication convergence probe")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level")
    parser.add_argument("--db", default=None, help="DuckDB file for stored runs")
    sub = parser.add_subparsers(dest="command", required=True)

    ping = sub.add_parser("ping", help="Write on the primary, poll the secondary")
    ping.add_argument("config", nargs="?", default="config.json")
    ping.add_argument("--iterations", type=int)
    ping.add_argument("--sleep-seconds", type=float)
    ping.add_argument("--max-wait-ms", type=float)
    ping.add_argument("--poll-interval-ms", type=float)
    ping.add_argument("--jitter-max-ms", type=float)
    ping.add_argument("--csv-out")
    ping.add_argument("--json-summary", action="store_true")
    ping.add_argument("--seed", type=int)
    ping.add_argument("--run-timeout", type=float, help="Stop starting new trials after N seconds")
    ping.add_argument("--no-store", action="store_true", help="Do not persist the run")
    ping.add_argument("--notes")
    ping.set_defaults(func=_cmd_ping)

    runs = sub.add_parser("runs", help="List stored runs")
    runs.set_defaults(func=_cmd_runs)

    compare = sub.add_parser("compare", help="Check a stored run against a baseline")
    compare.add_argument("base")
    compare.add_argument("candidate")
    compare.set_defaults(func=_cmd_compare)

    approve = sub.add_parser("approve-wait", help="Wait for a Control Group approval and unwrap")
    approve.add_argument("--addr", default=os.environ.get("VAULT_ADDR"))
    approve.add_argument("--token", default=os.environ.get("VAULT_TOKEN"), help="Approver token")
    approve.add_argument("--requester-token", help="Token used to unwrap (defaults to --token)")
    approve.add_argument("--namespace", default=os.environ.get("VAULT_NAMESPACE", ""))
    approve.add_argument("--accessor", required=True)
    approve.add_argument("--wrap-token")
    approve.add_argument("--authorize", action="store_true", help="Authorize before waiting")
    approve.add_argument("--attempts", type=int, default=60)
    approve.add_argument("--interval", type=float, default=0.5)
    approve.set_defaults(func=_cmd_approve_wait)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
