from __future__ import annotations

from pathlib import Path

from replprobe.storage.csv_sink import CsvTrialSink, TrialSink
from replprobe.storage.duckdb_store import Storage


def default_storage() -> Storage:
    return Storage(Path(".replprobe/replprobe.duckdb"))


__all__ = ["CsvTrialSink", "Storage", "TrialSink", "default_storage"]
