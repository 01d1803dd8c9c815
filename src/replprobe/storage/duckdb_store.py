from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import duckdb
import pandas as pd

from replprobe.config import ProbeConfig
from replprobe.errors import DuplicateRunError, StorageError
from replprobe.metrics import Trial


@dataclass(slots=True)
class Storage:
    db_path: Path

    def __post_init__(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(str(self.db_path))

    def _init_schema(self) -> None:
        with self._connect() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS run_meta (
                    run_id TEXT PRIMARY KEY,
                    created_at TIMESTAMP,
                    config_json TEXT,
                    summary_json TEXT,
                    notes TEXT
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS trials (
                    run_id TEXT,
                    sequence INTEGER,
                    value TEXT,
                    written_at_ms BIGINT,
                    outcome TEXT,
                    latency_ms DOUBLE,
                    elapsed_ms DOUBLE,
                    poll_attempts INTEGER,
                    last_error TEXT
                );
                """
            )

    def run_exists(self, run_id: str) -> bool:
        with self._connect() as con:
            result = con.execute(
                "SELECT COUNT(*) FROM run_meta WHERE run_id = ?",
                [run_id],
            ).fetchone()
            return bool(result and result[0] > 0)

    def save_run(
        self,
        config: ProbeConfig,
        run_id: str,
        trials: Iterable[Trial],
        summary: dict[str, object],
    ) -> None:
        try:
            if self.run_exists(run_id):
                raise DuplicateRunError(run_id)
            self._insert_run(config, run_id, trials, summary)
        except duckdb.Error as exc:
            msg = f"Could not save run {run_id} to {self.db_path}: {exc}"
            raise StorageError(msg) from exc

    def _insert_run(
        self,
        config: ProbeConfig,
        run_id: str,
        trials: Iterable[Trial],
        summary: dict[str, object],
    ) -> None:
        metadata = dict(config.to_metadata())
        metadata["run_id"] = run_id
        with self._connect() as con:
            con.execute(
                "INSERT INTO run_meta VALUES (?, ?, ?, ?, ?)",
                [run_id, config.created_at, json.dumps(metadata), json.dumps(summary), config.notes],
            )
            trials_df = pd.DataFrame(
                [
                    {
                        "run_id": run_id,
                        "sequence": t.sequence,
                        "value": t.value,
                        "written_at_ms": t.written_at_ms,
                        "outcome": t.outcome.value,
                        "latency_ms": t.latency_ms,
                        "elapsed_ms": t.elapsed_ms,
                        "poll_attempts": t.poll_attempts,
                        "last_error": t.last_error,
                    }
                    for t in trials
                ]
            )
            if not trials_df.empty:
                con.execute("INSERT INTO trials SELECT * FROM trials_df")

    def list_runs(self) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                "SELECT run_id, created_at, notes FROM run_meta ORDER BY created_at DESC"
            ).fetchdf()

    def load_run_meta(self, run_id: str) -> dict[str, object] | None:
        with self._connect() as con:
            row = con.execute(
                "SELECT config_json FROM run_meta WHERE run_id = ?",
                [run_id],
            ).fetchone()
            if not row:
                return None
            return json.loads(row[0])

    def load_summary(self, run_id: str) -> dict[str, object] | None:
        with self._connect() as con:
            row = con.execute(
                "SELECT summary_json FROM run_meta WHERE run_id = ?",
                [run_id],
            ).fetchone()
            if not row:
                return None
            return json.loads(row[0])

    def load_trials(self, run_id: str) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                "SELECT * FROM trials WHERE run_id = ? ORDER BY sequence",
                [run_id],
            ).fetchdf()
