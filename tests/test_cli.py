from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from conftest import FakePrimary, LaggingReplica
from replprobe import cli
from replprobe.errors import BackendError, StorageError
from replprobe.metrics import Trial, TrialOutcome
from replprobe.probe import runner


def _write_config(tmp_path: Path, **extra: Any) -> Path:
    data = {
        "primary": {"addr": "http://primary:8200", "token": "p"},
        "secondary": {"addr": "http://secondary:8200", "token": "s"},
        "namespace": "admin",
        "mount": "kv",
        "secret_path": "pingpong",
        "iterations": 3,
        "sleep_seconds": 0,
        "jitter_max_ms": 0,
        "max_wait_ms": 200,
        "poll_interval_ms": 10,
    }
    data.update(extra)
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data))
    return path


@pytest.fixture
def fake_cluster(monkeypatch: pytest.MonkeyPatch) -> tuple[FakePrimary, LaggingReplica]:
    primary = FakePrimary()
    secondary = LaggingReplica(primary, lag_reads=1)

    def factory(endpoint, config):
        return primary if endpoint.address == primary.address else secondary

    async def fake_run_ping(config, storage=None, progress=None, cancel=None):
        return await runner.run_ping(config, storage, progress, cancel, backend_factory=factory)

    monkeypatch.setattr(cli, "run_ping", fake_run_ping)
    return primary, secondary


def test_ping_success_exit_zero(
    tmp_path: Path,
    fake_cluster: tuple[FakePrimary, LaggingReplica],
    capsys: pytest.CaptureFixture[str],
) -> None:
    csv_path = tmp_path / "out.csv"
    config = _write_config(tmp_path, csv_out=str(csv_path))
    db = tmp_path / "runs.duckdb"
    code = cli.main(["--db", str(db), "ping", str(config), "--json-summary", "--notes", "smoke"])
    out = capsys.readouterr().out

    assert code == cli.EXIT_OK
    assert "[1/3] ✅ replicated in" in out
    assert "Successes: 3" in out
    summary = json.loads(out[out.index("{"):])
    assert summary["success"] == 3
    assert summary["fail"] == 0
    assert summary["mount"] == "kv"
    assert len(csv_path.read_text().strip().splitlines()) == 4

    code = cli.main(["--db", str(db), "runs"])
    assert code == cli.EXIT_OK
    assert "smoke" in capsys.readouterr().out


def test_ping_trial_failure_exit_one(
    tmp_path: Path,
    fake_cluster: tuple[FakePrimary, LaggingReplica],
    capsys: pytest.CaptureFixture[str],
) -> None:
    primary, _ = fake_cluster
    primary.fail_puts = {2}
    code = cli.main(["ping", str(_write_config(tmp_path)), "--no-store"])
    out = capsys.readouterr().out
    assert code == cli.EXIT_TRIAL_FAILURES
    assert "[2/3] ❌ write failed on primary" in out
    assert "p95 latency" in out


def test_ping_all_timeouts_still_prints_summary(
    tmp_path: Path,
    fake_cluster: tuple[FakePrimary, LaggingReplica],
    capsys: pytest.CaptureFixture[str],
) -> None:
    _, secondary = fake_cluster
    secondary.lag_reads = 10_000
    config = _write_config(tmp_path, iterations=2, max_wait_ms=30)
    code = cli.main(["ping", str(config), "--no-store", "--json-summary"])
    out = capsys.readouterr().out
    assert code == cli.EXIT_TRIAL_FAILURES
    assert "p50 latency: n/a ms" in out
    summary = json.loads(out[out.index("{"):])
    assert summary["lat_ms"]["p95"] is None


def test_preflight_failure_exit_code(
    tmp_path: Path,
    fake_cluster: tuple[FakePrimary, LaggingReplica],
    capsys: pytest.CaptureFixture[str],
) -> None:
    _, secondary = fake_cluster
    secondary.preflight_error = BackendError("connection refused")
    code = cli.main(["ping", str(_write_config(tmp_path)), "--no-store"])
    err = capsys.readouterr().err
    assert code == cli.EXIT_PREFLIGHT
    assert "secondary not reachable" in err


def test_invalid_config_exit_code(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _write_config(tmp_path, iterations=0)
    assert cli.main(["ping", str(config)]) == cli.EXIT_CONFIG
    assert "iterations" in capsys.readouterr().err


def test_compare_unknown_run(tmp_path: Path) -> None:
    assert cli.main(["--db", str(tmp_path / "runs.duckdb"), "compare", "a", "b"]) == cli.EXIT_CONFIG


def test_exit_codes_are_distinct() -> None:
    codes = {cli.EXIT_OK, cli.EXIT_TRIAL_FAILURES, cli.EXIT_CONFIG, cli.EXIT_PREFLIGHT}
    assert len(codes) == 4


@pytest.mark.parametrize(
    "extra",
    [
        {"seed": "abc"},
        {"retry": "yes"},
        {"run_timeout_sec": "later"},
        {"secondary": {"addr": "http://secondary:8200", "timeout_sec": "slow"}},
    ],
)
def test_malformed_config_values_exit_code(
    tmp_path: Path, extra: dict[str, Any], capsys: pytest.CaptureFixture[str]
) -> None:
    config = _write_config(tmp_path, **extra)
    assert cli.main(["ping", str(config), "--no-store"]) == cli.EXIT_CONFIG
    assert "Error:" in capsys.readouterr().err


def test_duplicate_run_id_exit_code(
    tmp_path: Path,
    fake_cluster: tuple[FakePrimary, LaggingReplica],
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = _write_config(tmp_path, run_id="nightly-1")
    db = tmp_path / "runs.duckdb"
    assert cli.main(["--db", str(db), "ping", str(config)]) == cli.EXIT_OK
    capsys.readouterr()

    primary, _ = fake_cluster
    writes = primary.put_calls
    assert cli.main(["--db", str(db), "ping", str(config)]) == cli.EXIT_CONFIG
    assert "already exists" in capsys.readouterr().err
    assert primary.put_calls == writes


def test_summary_printed_when_saving_fails(
    tmp_path: Path,
    fake_cluster: tuple[FakePrimary, LaggingReplica],
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    def broken_save(storage, config, result) -> None:
        raise StorageError("database is locked")

    monkeypatch.setattr(cli, "save_result", broken_save)
    config = _write_config(tmp_path)
    code = cli.main(["--db", str(tmp_path / "runs.duckdb"), "ping", str(config), "--json-summary"])
    captured = capsys.readouterr()

    assert code == cli.EXIT_CONFIG
    assert "Successes: 3" in captured.out
    assert json.loads(captured.out[captured.out.index("{"):])["success"] == 3
    assert "not saved: database is locked" in captured.err


def test_timeout_line_shows_last_observation(capsys: pytest.CaptureFixture[str]) -> None:
    trial = Trial(
        2,
        "pong-2-1700000000000-abcd1234",
        1_700_000_000_000,
        TrialOutcome.TIMED_OUT,
        elapsed_ms=5000.0,
        poll_attempts=50,
        last_error="got pong-1-1699999999000-abcd1234",
    )
    asyncio.run(cli._print_progress(trial, 3))
    out = capsys.readouterr().out
    assert "(expected pong-2-1700000000000-abcd1234; got pong-1-1699999999000-abcd1234)" in out
    assert "got: got" not in out


def test_write_failure_line_has_single_prefix(capsys: pytest.CaptureFixture[str]) -> None:
    trial = Trial(3, "pong-3", 1_700_000_000_000, TrialOutcome.WRITE_FAILED, last_error="permission denied (status 403)")
    asyncio.run(cli._print_progress(trial, 3))
    out = capsys.readouterr().out
    assert out.strip() == "[3/3] ❌ write failed on primary: permission denied (status 403)"
