from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

from bom_reconcile.cli import main as cli_main
from bom_reconcile.db.record_store import InMemoryRecordStore, RecordStoreError

"""Error log contract: logs/errors-YYYYMMDD-HHMMSS.log, JSON Lines, fixed keys."""

EXPECTED_KEYS = {"timestamp", "file", "phase", "row", "natural_id", "error_type", "message"}


class RejectingStore(InMemoryRecordStore):
    def save(self, handle):
        if handle.external_id == "ACME_PRT-2":
            raise RecordStoreError("value too long for column")
        return super().save(handle)


def test_error_log_written_with_fixed_keys(write_config: Path, sample_bom_csv: Path, temp_workdir: Path, monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    with patch("bom_reconcile.cli.__main__.InMemoryRecordStore", RejectingStore):
        code = cli_main([])
    assert code == 2

    logs = list((temp_workdir / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    records = [json.loads(line) for line in logs[0].read_text(encoding="utf-8").splitlines()]
    assert records
    for rec in records:
        assert set(rec) == EXPECTED_KEYS
        assert rec["timestamp"].endswith("Z")
        assert rec["file"] == "bom.csv"
        assert isinstance(rec["row"], int)
    first = records[0]
    assert (first["phase"], first["row"], first["natural_id"], first["error_type"]) == (
        "items",
        4,
        "PRT-2",
        "LEAF_FAILED",
    )
    assert first["message"] == "value too long for column"


def test_no_error_log_on_clean_run(write_config: Path, sample_bom_csv: Path, temp_workdir: Path, monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    assert cli_main([]) == 0
    assert not (temp_workdir / "logs").exists()
