from __future__ import annotations

import csv
from pathlib import Path
from typing import IO, Protocol

from replprobe.metrics import CSV_HEADER, Trial


class TrialSink(Protocol):
    def write(self, trial: Trial) -> None:
        ...

    def close(self) -> None:
        ...


class CsvTrialSink:
    """Streams one row per finished trial, flushing after each row."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh: IO[str] | None = self.path.open("w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._fh)
        self._writer.writerow(CSV_HEADER)
        self._fh.flush()

    def write(self, trial: Trial) -> None:
        if self._fh is None:
            msg = f"CSV sink {self.path} is closed"
            raise ValueError(msg)
        self._writer.writerow(trial.csv_row())
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> CsvTrialSink:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
